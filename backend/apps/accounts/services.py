"""
Accounts services - identity operations used by tenant provisioning.

Each create function has a matching delete function that the provisioning
saga uses as its compensating action. Deletes are filtered deletes, so
compensating an already-removed record is a no-op.
"""

from django.db import IntegrityError, transaction

from apps.accounts.models import Member, User, UserRole
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)


class UserAlreadyExistsError(Exception):
    """Raised when signing up with an email that already has an account."""

    pass


def create_owner_user(email: str, name: str = "", password: str | None = None) -> User:
    """
    Create the identity that will own a new organization.

    Signup never adopts an existing user: an existing email fails the step
    rather than being attached (and later compensated) by mistake.
    """
    try:
        with transaction.atomic():
            user = User.objects.create_user(email=email, password=password, name=name)
    except IntegrityError as e:
        raise UserAlreadyExistsError(f"An account already exists for {email}") from e

    logger.info("owner_user_created", user_id=user.id)
    return user


def delete_user(user_id: int) -> None:
    """Delete a user created during a failed signup."""
    deleted, _ = User.objects.filter(id=user_id).delete()
    logger.info("user_deleted", user_id=user_id, deleted=bool(deleted))


def assign_role(user: User, role: str = UserRole.Role.ADMIN) -> UserRole:
    """Grant a platform role to a user."""
    with transaction.atomic():
        return UserRole.objects.create(user=user, role=role)


def revoke_role(user_id: int, role: str = UserRole.Role.ADMIN) -> None:
    """Remove a platform role from a user."""
    UserRole.objects.filter(user_id=user_id, role=role).delete()


def link_member(user: User, organization: Organization, role: str = "admin") -> Member:
    """Attach a user to an organization."""
    with transaction.atomic():
        return Member.objects.create(user=user, organization=organization, role=role)


def unlink_member(user_id: int, organization_id: int) -> None:
    """Detach a user from an organization."""
    Member.objects.filter(user_id=user_id, organization_id=organization_id).delete()
