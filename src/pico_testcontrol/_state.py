# pico_testcontrol/_state.py
import threading
from typing import Any, Dict, List, Optional, Tuple

_lock = threading.RLock()

_container: Optional[Any] = None
_extension_modules: Tuple[str, ...] = ()
_registered_services: Dict[str, List[Any]] = {}
