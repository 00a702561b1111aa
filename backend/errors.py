"""Engine error taxonomy; every class carries the status it maps to at the HTTP edge."""


class CardEngineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(CardEngineError):
    """Missing or unusable required input; raised before any model call."""

    status_code = 400


class ModelCallError(CardEngineError):
    """The model call raised, timed out, or returned an error sentinel."""

    status_code = 502


class ModelOutputError(CardEngineError):
    """The model answered, but the content is unparseable or fails validation."""

    status_code = 500
