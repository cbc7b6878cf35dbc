class PvpMatchError(Exception):
    pass


class MatchNotFoundError(PvpMatchError):
    pass


class MatchForbiddenError(PvpMatchError):
    pass


class MatchFullError(PvpMatchError):
    pass


class MatchNotEnoughPlayersError(PvpMatchError):
    pass


class MatchNotStartedError(PvpMatchError):
    pass


class MatchClosedError(PvpMatchError):
    pass


class InvalidSubmissionError(PvpMatchError):
    pass


class QuestionGenerationError(PvpMatchError):
    pass


class ChallengeNotFoundError(PvpMatchError):
    pass


class ChallengeForbiddenError(PvpMatchError):
    pass


class ChallengeNotAllowedError(PvpMatchError):
    pass


class ChallengeNotPendingError(PvpMatchError):
    pass


class ChallengeExistsError(PvpMatchError):
    pass


class InvalidChallengeError(PvpMatchError):
    pass
