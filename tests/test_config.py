# tests/test_config.py
import json
import logging

import pytest

from pico_testcontrol.config import TestControl, control_from_tree, get_control, load_control
from pico_testcontrol.config_sources import DictSource, JsonTreeSource, YamlTreeSource, source_for_path
from pico_testcontrol.decorators import control
from pico_testcontrol.exceptions import ConfigurationError
from pico_testcontrol.project_stage import ProjectStage, get_project_stage, set_project_stage


class FileHandler(logging.Handler):
    def emit(self, record):
        pass


# --- TestControl ---

def test_defaults():
    tc = TestControl()
    assert tc.start_scopes == ()
    assert tc.project_stage is ProjectStage.UNIT_TEST
    assert tc.start_external_containers is True
    assert tc.log_handler is None


def test_normalizes_scopes_and_stage():
    tc = TestControl(start_scopes="request", project_stage="development")
    assert tc.start_scopes == ("request",)
    assert tc.project_stage is ProjectStage.DEVELOPMENT


def test_rejects_non_handler_log_handler():
    with pytest.raises(ConfigurationError):
        TestControl(log_handler=object)


def test_is_immutable():
    tc = TestControl()
    with pytest.raises(Exception):
        tc.start_scopes = ("x",)


# --- @control / get_control ---

def test_control_decorator_bare_and_with_arguments():
    @control
    class Plain:
        pass

    @control(start_scopes=("request", "conversation"), project_stage="Staging", log_handler=FileHandler)
    class Configured:
        @control(start_scopes="session")
        def test_m(self):
            pass

        def test_n(self):
            pass

    assert get_control(Plain) == TestControl()
    tc = get_control(Configured)
    assert tc.start_scopes == ("request", "conversation")
    assert tc.project_stage is ProjectStage.STAGING
    assert tc.log_handler is FileHandler
    assert get_control(Configured.test_m).start_scopes == ("session",)
    assert get_control(Configured().test_m).start_scopes == ("session",)
    assert get_control(Configured.test_n) is None


def test_subclass_does_not_inherit_declared_control():
    @control(start_scopes=("request",))
    class Base:
        pass

    class Child(Base):
        pass

    assert get_control(Base) is not None
    assert get_control(Child) is None


# --- Tree configuration ---

def test_control_from_tree_reads_testcontrol_subtree():
    tree = {
        "testcontrol": {
            "start_scopes": ["request"],
            "project_stage": "SystemTest",
            "start_external_containers": "false",
            "log_handler": f"{__name__}.FileHandler",
        },
        "other": {"ignored": True},
    }
    tc = control_from_tree(tree)
    assert tc == TestControl(("request",), ProjectStage.SYSTEM_TEST, False, FileHandler)


def test_control_from_tree_accepts_flat_mapping_and_comma_scopes():
    tc = control_from_tree({"start_scopes": "session, request"})
    assert tc.start_scopes == ("session", "request")


@pytest.mark.parametrize(
    "tree",
    [
        {"start_scope": ["request"]},
        {"project_stage": "Nowhere"},
        {"start_external_containers": "maybe"},
        {"log_handler": "no_such_module_xyz.Handler"},
        {"log_handler": "NoDots"},
        {"testcontrol": "not a mapping"},
    ],
)
def test_control_from_tree_rejects_bad_input(tree):
    with pytest.raises(ConfigurationError):
        control_from_tree(tree)


def test_load_control_from_json(tmp_path):
    path = tmp_path / "control.json"
    path.write_text(json.dumps({"testcontrol": {"start_scopes": ["conversation"], "project_stage": "Development"}}))
    tc = load_control(str(path))
    assert tc.start_scopes == ("conversation",)
    assert tc.project_stage is ProjectStage.DEVELOPMENT


def test_load_control_from_yaml(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "control.yml"
    path.write_text("testcontrol:\n  start_scopes: [request]\n  start_external_containers: no\n")
    tc = load_control(str(path))
    assert tc.start_scopes == ("request",)
    assert tc.start_external_containers is False


def test_load_control_from_dict_source():
    tc = load_control(DictSource({"testcontrol": {"project_stage": "Production"}}))
    assert tc.project_stage is ProjectStage.PRODUCTION


def test_sources_report_unreadable_files(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError, match="Failed to load JSON control file"):
        JsonTreeSource(str(broken)).get_tree()
    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]")
    with pytest.raises(ConfigurationError):
        JsonTreeSource(str(listing)).get_tree()


def test_source_for_path_by_suffix():
    assert isinstance(source_for_path("a.json"), JsonTreeSource)
    assert isinstance(source_for_path("a.YAML"), YamlTreeSource)
    with pytest.raises(ConfigurationError):
        source_for_path("a.ini")


# --- Project stage ---

@pytest.mark.parametrize("value", ["UnitTest", "unittest", "UNIT_TEST", "unit_test", ProjectStage.UNIT_TEST])
def test_project_stage_of(value):
    assert ProjectStage.of(value) is ProjectStage.UNIT_TEST


def test_project_stage_of_unknown():
    with pytest.raises(ConfigurationError):
        ProjectStage.of("Moon")


def test_current_stage_defaults_to_production(monkeypatch):
    monkeypatch.delenv("PICO_PROJECT_STAGE", raising=False)
    set_project_stage(None)
    assert get_project_stage() is ProjectStage.PRODUCTION


def test_current_stage_read_from_environment(monkeypatch):
    monkeypatch.setenv("PICO_PROJECT_STAGE", "staging")
    set_project_stage(None)
    assert get_project_stage() is ProjectStage.STAGING
    set_project_stage("Development")
    assert get_project_stage() is ProjectStage.DEVELOPMENT
