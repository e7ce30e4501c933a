"""Device Init - provision OS images with device identity and network settings.

This package writes config.json and network credentials into bootable
device images across both on-disk OS generations, and runs the device
type's initialization operations (copy, replace, run-script, burn).
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
