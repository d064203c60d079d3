class EngineError(Exception):
    pass


class QuestionBankError(EngineError):
    """The question bank failed or returned no usable questions."""


class SessionSinkError(EngineError):
    """The session sink could not open or finalize a session."""


class MatchRegistryError(EngineError):
    pass
