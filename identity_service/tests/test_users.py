"""
Test cases for UserService and the credential store.
"""
import threading

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_service.auth import users
from identity_service.auth.models import User, Role, hash_password, verify_password
from identity_service.auth.store import CredentialStore
from identity_service.auth.users import UserService, UserCreate, UserLogin
from identity_service.auth.jwt import verify_token
from identity_service.auth.exceptions import (
    EmailAlreadyExistsException, InvalidCredentialsException,
    UserNotFoundException, StoreUnavailableException
)


@pytest.mark.asyncio
async def test_register_defaults_role_to_user(db):
    user_info, token = await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )
    assert user_info.role == Role.USER
    assert user_info.id is not None

    claims = verify_token(token)
    assert (claims.user_id, claims.role, claims.email) == (user_info.id, Role.USER, "test@example.com")


@pytest.mark.asyncio
async def test_register_conflict_leaves_store_unchanged(db):
    data = UserCreate(name="Test User", email="test@example.com", password="password123")
    await UserService.register_user(data, db)

    with pytest.raises(EmailAlreadyExistsException):
        await UserService.register_user(data, db)
    assert await CredentialStore(db).count() == 1


@pytest.mark.asyncio
async def test_unique_constraint_violation_is_a_conflict(db, monkeypatch):
    """A registration racing past the existence check still fails with a conflict."""
    await UserService.register_user(
        UserCreate(name="First", email="race@example.com", password="password123"), db
    )

    async def never_exists(self, email):
        return False

    monkeypatch.setattr(CredentialStore, "email_exists", never_exists)

    with pytest.raises(EmailAlreadyExistsException):
        await UserService.register_user(
            UserCreate(name="Second", email="race@example.com", password="password456"), db
        )

    monkeypatch.undo()
    store = CredentialStore(db)
    assert await store.count() == 1
    assert (await store.get_by_email("race@example.com")).name == "First"


@pytest.mark.asyncio
async def test_store_insert_assigns_id(db):
    store = CredentialStore(db)
    user = await store.insert(User(
        name="Stored",
        email="stored@example.com",
        hashed_password=hash_password("secret"),
    ))
    assert user.id is not None
    assert user.role == Role.USER
    assert user.created_at is not None
    assert await store.email_exists("stored@example.com")
    assert (await store.get_by_id(user.id)).email == "stored@example.com"
    assert await store.get_by_id(user.id + 1) is None


@pytest.mark.asyncio
async def test_authenticate_user(db):
    registered, _ = await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )

    user, token = await UserService.authenticate_user(
        UserLogin(email="test@example.com", password="password123"), db
    )
    assert user.id == registered.id
    assert verify_token(token).user_id == registered.id

    with pytest.raises(InvalidCredentialsException) as wrong:
        await UserService.authenticate_user(
            UserLogin(email="test@example.com", password="wrong"), db
        )
    with pytest.raises(InvalidCredentialsException) as unknown:
        await UserService.authenticate_user(
            UserLogin(email="missing@example.com", password="password123"), db
        )
    assert wrong.value.detail == unknown.value.detail == "Invalid credentials"


@pytest.mark.asyncio
async def test_get_user_by_id(db):
    registered, _ = await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )
    profile = await UserService.get_user_by_id(registered.id, db)
    assert profile.model_dump() == {"id": registered.id, "name": "Test User", "email": "test@example.com"}

    with pytest.raises(UserNotFoundException):
        await UserService.get_user_by_id(registered.id + 100, db)


@pytest.mark.asyncio
async def test_store_failure_is_distinct_from_absence(broken_db):
    store = CredentialStore(broken_db)
    with pytest.raises(StoreUnavailableException):
        await store.get_by_email("test@example.com")
    with pytest.raises(StoreUnavailableException):
        await UserService.get_user_by_id(1, broken_db)


@pytest.mark.asyncio
async def test_insert_does_not_read_back_after_commit(db, monkeypatch):
    """Once the commit succeeds the caller gets the user, never a store error."""
    async def failing_refresh(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(AsyncSession, "refresh", failing_refresh)

    user_info, token = await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )
    assert user_info.id is not None
    assert user_info.role == Role.USER
    assert verify_token(token).user_id == user_info.id

    monkeypatch.undo()
    assert await CredentialStore(db).count() == 1


@pytest.mark.asyncio
async def test_unknown_email_still_checks_a_password_hash(db, monkeypatch):
    """Unknown emails run the same bcrypt check as a wrong password."""
    await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )
    checked = []

    def recording_verify(password, hashed):
        checked.append(hashed)
        return verify_password(password, hashed)

    monkeypatch.setattr(users, "verify_password", recording_verify)

    with pytest.raises(InvalidCredentialsException):
        await UserService.authenticate_user(
            UserLogin(email="missing@example.com", password="password123"), db
        )
    assert len(checked) == 1
    assert checked[0].startswith("$2")

    with pytest.raises(InvalidCredentialsException):
        await UserService.authenticate_user(
            UserLogin(email="test@example.com", password="wrong"), db
        )
    assert len(checked) == 2


@pytest.mark.asyncio
async def test_password_hashing_runs_off_the_event_loop(db, monkeypatch):
    loop_thread = threading.get_ident()
    threads = []

    def recording_hash(password):
        threads.append(threading.get_ident())
        return hash_password(password)

    def recording_verify(password, hashed):
        threads.append(threading.get_ident())
        return verify_password(password, hashed)

    monkeypatch.setattr(users, "hash_password", recording_hash)
    monkeypatch.setattr(users, "verify_password", recording_verify)

    await UserService.register_user(
        UserCreate(name="Test User", email="test@example.com", password="password123"), db
    )
    await UserService.authenticate_user(
        UserLogin(email="test@example.com", password="password123"), db
    )

    assert len(threads) == 2
    assert loop_thread not in threads
