"""
Exception types for qoslens
"""


class QoSLensError(Exception):
    """Base class for all qoslens errors"""


class ConfigError(QoSLensError):
    """Configuration file or module definition is invalid"""


class UnknownModuleError(QoSLensError):
    """Requested module is not present in the configuration"""

    def __init__(self, module: str):
        super().__init__(f"unknown module {module!r}")
        self.module = module


class UnknownProberError(QoSLensError):
    """Module references a probe kind with no registered implementation"""

    def __init__(self, prober: str):
        super().__init__(f"unknown prober {prober!r}")
        self.prober = prober


class SessionSetupError(QoSLensError):
    """Probe transport session could not be constructed"""


class GatherError(QoSLensError):
    """Measurement registry could not be collected into a snapshot"""
