from abc import ABC, abstractmethod


class IdRemapError(Exception, ABC):
    @property
    @abstractmethod
    def code(self):
        pass

    default_should_alert_team = True
    default_message = "Error"

    def __init__(self, message=None, should_alert_team=None, **details):
        if message is None:
            message = self.default_message
        self.message = message
        self.should_alert_team = (
            should_alert_team
            if should_alert_team is not None
            else self.default_should_alert_team
        )
        self.details = details
        super().__init__(message)

    def to_dict(self):
        return dict(message=self.message, code=self.code, details=self.details)


class InvalidConfigurationError(IdRemapError):
    code = "INVALID_CONFIGURATION"
    default_message = "Invalid configuration"
    default_should_alert_team = False


class SchemaInspectionError(IdRemapError):
    code = "SCHEMA_INSPECTION_ERROR"
    default_message = "Could not enumerate the columns of the source schema"


class MappingStoreError(IdRemapError):
    code = "MAPPING_STORE_ERROR"
    default_message = "Could not load the identifier mapping"


class TransformError(IdRemapError):
    code = "TRANSFORM_IO_ERROR"
    default_message = "File transform failed"

    def __init__(self, message=None, path=None, **kwargs):
        super().__init__(message, path=str(path) if path else None, **kwargs)
        self.path = path


class NoDumpFilesError(IdRemapError):
    code = "NO_DUMP_FILES"
    default_message = "No dump files found"
    default_should_alert_team = False


class DumpError(IdRemapError):
    code = "DUMP_ERROR"
    default_message = "Dump command failed"

    def __init__(self, message=None, returncode=None, **kwargs):
        super().__init__(message, returncode=returncode, **kwargs)
        self.returncode = returncode
