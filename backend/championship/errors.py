from __future__ import annotations


class ChampionshipError(Exception):
    """Base for failures reported back to the caller with an HTTP status."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ChampionshipError):
    status_code = 404


class InsufficientFunds(ChampionshipError):
    status_code = 400


class InvalidInput(ChampionshipError):
    status_code = 400


class InvalidSymbol(InvalidInput):
    pass


class DuplicateSymbol(InvalidInput):
    # the asset endpoint has always reported duplicates as a server error
    status_code = 500


class InternalFailure(ChampionshipError):
    status_code = 500
