"""Process-wide shutdown signal shared by long-running loops."""

import threading

shutdown_event = threading.Event()
