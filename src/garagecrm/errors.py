"""Exceptions raised by the Garage CRM package."""


class CrmError(Exception):
    """Base class for Garage CRM errors."""


class ConfigError(CrmError):
    """An environment setting could not be parsed."""


class DuplicateStageError(CrmError):
    """A pipeline stage with the same name already exists."""


class DuplicateFieldError(CrmError):
    """An intake form field with the same name already exists."""


class SystemRoleError(CrmError):
    """System roles cannot be deleted."""


class UnknownRoleError(CrmError):
    """A role id or name does not exist."""
