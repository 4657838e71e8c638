"""
Tests for accounts models.
"""

import pytest
from django.db import IntegrityError

from apps.accounts.models import User
from tests.accounts.factories import MemberFactory, UserFactory, UserRoleFactory
from tests.organizations.factories import OrganizationFactory


@pytest.mark.django_db
class TestUserModel:
    """Tests for User model."""

    def test_create_user(self) -> None:
        """Should create a user with required fields."""
        user = UserFactory.create()

        assert user.pk is not None
        assert user.is_active is True
        assert user.is_staff is False

    def test_user_str(self) -> None:
        """String representation should be email."""
        user = UserFactory.create(email="test@example.com")

        assert str(user) == "test@example.com"

    def test_email_unique(self) -> None:
        """Email must be unique."""
        UserFactory.create(email="duplicate@example.com")

        with pytest.raises(IntegrityError):
            UserFactory.create(email="duplicate@example.com")

    def test_create_user_without_password_is_unusable(self) -> None:
        user = User.objects.create_user(email="owner@example.com")

        assert user.has_usable_password() is False

    def test_create_superuser(self) -> None:
        user = User.objects.create_superuser(email="admin@example.com", password="s3cret-pass")

        assert user.is_staff is True
        assert user.is_superuser is True
        assert user.check_password("s3cret-pass")


@pytest.mark.django_db
class TestUserRoleModel:
    """Tests for UserRole model."""

    def test_role_unique_per_user(self) -> None:
        role = UserRoleFactory.create()

        with pytest.raises(IntegrityError):
            UserRoleFactory.create(user=role.user, role=role.role)


@pytest.mark.django_db
class TestMemberModel:
    """Tests for Member model."""

    def test_create_member(self) -> None:
        """Should create a member linking user to org."""
        member = MemberFactory.create()

        assert member.pk is not None
        assert member.user is not None
        assert member.organization is not None

    def test_member_str(self) -> None:
        """String representation should be user @ org."""
        member = MemberFactory.create(
            user__email="owner@example.com",
            organization__name="Acme Estates",
            role="admin",
        )

        assert str(member) == "owner@example.com @ Acme Estates (admin)"

    def test_is_admin(self) -> None:
        assert MemberFactory.build(role="admin").is_admin is True
        assert MemberFactory.build(role="member").is_admin is False

    def test_unique_user_org_combination(self) -> None:
        """A user can only be a member of an org once."""
        member = MemberFactory.create()

        with pytest.raises(IntegrityError):
            MemberFactory.create(user=member.user, organization=member.organization)

    def test_user_can_be_in_multiple_orgs(self) -> None:
        """Same user can be member of different orgs."""
        user = UserFactory.create()
        MemberFactory.create(user=user, organization=OrganizationFactory.create())
        MemberFactory.create(user=user, organization=OrganizationFactory.create())

        assert user.memberships.count() == 2
