from enum import StrEnum


class Role(StrEnum):
    USER = "user"  # books published experiences
    HOST = "host"  # creates and publishes own experiences
    ADMIN = "admin"  # moderates everything, cannot self-register


# Roles a visitor may pick for themselves at signup.
SELF_SERVICE_ROLES: frozenset[Role] = frozenset({Role.USER, Role.HOST})


ROLE_DESCRIPTIONS: dict[str, str] = {
    Role.USER: "Browse published experiences and book seats.",
    Role.HOST: "Create experiences and publish the ones you own.",
    Role.ADMIN: "Publish or block any experience and list all users.",
}
