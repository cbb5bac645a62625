class QuizEngineError(Exception):
    pass


class QuizNotFoundError(QuizEngineError):
    pass


class AttemptNotFoundError(QuizEngineError):
    pass


class AttemptLimitReachedError(QuizEngineError):
    pass


class StorageUnavailableError(QuizEngineError):
    """Raised by key-value backends; callers in the autosave layer catch it."""
    pass


class AttemptStateError(QuizEngineError):
    """Operation not allowed in the attempt's current status."""
    pass
