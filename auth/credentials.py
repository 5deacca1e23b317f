"""
auth/credentials.py -- Signup and signin rules.

CredentialManager owns the two operations that create or prove a credential.
It talks to storage only through UserStore and to hashing only through
auth.passwords. Writing the resulting user id into the session is the HTTP
layer's job (api/routes/v1/auth.py), not this module's.

Known race:
  signup() looks the email up and then inserts. The two statements are not
  one transaction, so two concurrent signups for the same email can both see
  "no such user". The UNIQUE(email) index in auth/store.py rejects the second
  insert and UserStore.insert() raises DuplicateIdentity for it, so the
  caller sees the same error either way. No duplicate row is ever written.

Layer rule: no imports from api/ or reports/.
"""

from __future__ import annotations

import logging

from auth.models import Identity
from auth.passwords import DUMMY_ENCODING, hash_password, verify_password
from auth.store import UserStore
from core.errors import DuplicateIdentity, IdentityNotFound, InvalidCredential

logger = logging.getLogger("carvalue.auth")


class CredentialManager:
    """Creates users with hashed passwords and checks passwords at signin.

    Usage:
        manager = CredentialManager(store)
        user = manager.signup("a@example.com", "pw1")
        same = manager.signin("a@example.com", "pw1")
    """

    def __init__(self, store: UserStore, new_users_are_admins: bool = False) -> None:
        self.store = store
        self.new_users_are_admins = new_users_are_admins

    def signup(self, email: str, password: str) -> Identity:
        """Register a new user and return the stored record.

        Raises DuplicateIdentity if the email is already registered, whether
        found by the up-front lookup or rejected by the unique index.
        """
        if self.store.find_by_email(email):
            logger.info("Signup rejected: email already in use")
            raise DuplicateIdentity()

        user = self.store.insert(email, hash_password(password), admin=self.new_users_are_admins)
        logger.info("Signed up user id=%d", user.id)
        return user

    def signin(self, email: str, password: str) -> Identity:
        """Return the user matching email and password.

        Raises IdentityNotFound for an unknown email and InvalidCredential for
        a wrong password. Both paths run one scrypt derivation so response time
        does not reveal which one happened.
        """
        matches = self.store.find_by_email(email)
        if not matches:
            # Equalize timing -- do NOT return early before running scrypt.
            verify_password(password, DUMMY_ENCODING)
            logger.info("Signin rejected: unknown email")
            raise IdentityNotFound()

        user = matches[0]
        if not verify_password(password, user.password):
            logger.warning("Signin rejected: bad password for user id=%d", user.id)
            raise InvalidCredential()

        logger.info("Signed in user id=%d", user.id)
        return user

    def change_password(self, user_id: int, password: str) -> Identity:
        """Replace a user's password with a freshly salted encoding."""
        return self.store.update(user_id, password=hash_password(password))


