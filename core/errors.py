"""Error taxonomy for capture supervision."""


class CaptureError(Exception):
    pass


class MissingArtifactError(CaptureError):
    """A required encoder/driver file is absent."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required artifacts: {', '.join(self.missing)}")


class LaunchError(CaptureError):
    pass


class UnsupportedTargetError(CaptureError, ValueError):
    pass


class UnknownTargetError(CaptureError, ValueError):
    pass


class MissingParameterError(CaptureError, ValueError):
    pass


class CommandTemplateError(CaptureError):
    pass


class ProcessNotRunningError(CaptureError):
    pass


class CaptureStateError(CaptureError):
    pass


class DriverRegistrationError(CaptureError):
    pass


__all__ = [
    "CaptureError",
    "MissingArtifactError",
    "LaunchError",
    "UnsupportedTargetError",
    "UnknownTargetError",
    "MissingParameterError",
    "CommandTemplateError",
    "ProcessNotRunningError",
    "CaptureStateError",
    "DriverRegistrationError",
]
