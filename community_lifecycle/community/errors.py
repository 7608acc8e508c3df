class CommunityError(Exception):
    http_status = 400


class NotFoundError(CommunityError):
    http_status = 404


class ForbiddenError(CommunityError):
    http_status = 403


class InvalidOperationError(CommunityError):
    http_status = 422


class ValidationError(CommunityError):
    http_status = 422


class CommunityNotFoundError(NotFoundError):
    pass


class MembershipNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class ModerationCaseNotFoundError(NotFoundError):
    pass


class OwnerRemovalError(InvalidOperationError):
    pass


class InvalidEnumValueError(InvalidOperationError):
    pass
