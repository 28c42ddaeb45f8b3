class GameError(Exception):
    """A failure reported once to the connection that caused it."""
    message = "Request failed"

    def __init__(self, message: str = ""):
        self.message = message or self.message
        super().__init__(self.message)


class QuizNotFound(GameError):
    message = "Quiz not found"


class RoomNotFound(GameError):
    message = "Game not found. Check PIN."


class InvalidName(GameError):
    message = "Enter a name."


class NameTaken(GameError):
    message = "Name taken. Try another."
