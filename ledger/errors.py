class LedgerServiceError(Exception):
    pass


class MemberNotFoundError(LedgerServiceError):
    pass


class MemberArchivedError(LedgerServiceError):
    pass


class MembershipInactiveError(LedgerServiceError):
    pass


class InvalidAmountError(LedgerServiceError):
    pass


class InsufficientCashbackError(LedgerServiceError):
    pass


class NoPaymentToUndoError(LedgerServiceError):
    pass


class StoreUnavailableError(LedgerServiceError):
    pass


class BackdatedPaymentError(LedgerServiceError):
    pass
