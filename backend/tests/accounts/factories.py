"""
Factories for accounts app models.

Used in tests to create test data.
"""

import factory
from factory.django import DjangoModelFactory

from apps.accounts.models import Member, User, UserRole
from tests.organizations.factories import OrganizationFactory


class UserFactory(DjangoModelFactory):
    """Factory for User model."""

    class Meta:
        model = User

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    name = factory.Faker("name")
    is_active = True
    is_staff = False


class UserRoleFactory(DjangoModelFactory):
    """Factory for UserRole model."""

    class Meta:
        model = UserRole

    user = factory.SubFactory(UserFactory)
    role = UserRole.Role.ADMIN


class MemberFactory(DjangoModelFactory):
    """Factory for Member model."""

    class Meta:
        model = Member

    user = factory.SubFactory(UserFactory)
    organization = factory.SubFactory(OrganizationFactory)
    role = "member"
