"""
Test cases for the register, login, refresh and profile flows.
"""
import asyncio

import pytest

from user_service.auth.errors import (
    DuplicateEmail, InvalidCredentials, InvalidToken, SessionUserNotFound, UserNotFound, ValidationError
)
from user_service.auth.models import Role
from user_service.auth.users import (
    LoginRequest, ProfileUpdate, RegisterRequest, SessionManager
)


async def register(manager, email="a@x.com", password="pw", name="Ann", role=None):
    return await manager.register(RegisterRequest(email=email, password=password, name=name, role=role))


@pytest.mark.asyncio
async def test_register_returns_sanitized_user_and_tokens(manager, codec):
    result = await register(manager)

    view = result.user.to_wire()
    assert set(view) == {"id", "email", "name", "image", "role", "createdAt"}
    assert view["email"] == "a@x.com"
    assert view["role"] == "PATIENT"
    assert view["image"] is None

    identity = codec.verify_access(result.tokens.access_token)
    assert identity.user_id == result.user.id
    assert identity.role is Role.PATIENT
    assert codec.verify_refresh(result.tokens.refresh_token).user_id == result.user.id


@pytest.mark.asyncio
async def test_register_stores_a_hash_not_the_password(manager, store, hasher):
    result = await register(manager, password="s3cret")

    record = await store.find_by_id(result.user.id)
    assert record.password_hash != "s3cret"
    assert hasher.verify("s3cret", record.password_hash)


@pytest.mark.asyncio
async def test_register_with_role(manager):
    result = await register(manager, email="doc@x.com", role=Role.DOCTOR)

    assert result.user.role is Role.DOCTOR


@pytest.mark.asyncio
async def test_register_refuses_admin_role(manager, store):
    with pytest.raises(ValidationError):
        await register(manager, email="root@x.com", role=Role.ADMIN)

    assert await store.find_by_email("root@x.com") is None


@pytest.mark.asyncio
async def test_register_admin_when_allowed(store, codec, hasher, settings):
    manager = SessionManager(
        store=store,
        codec=codec,
        hasher=hasher,
        settings=settings.model_copy(update={"allow_admin_registration": True}),
    )

    result = await register(manager, email="root@x.com", role=Role.ADMIN)
    assert result.user.role is Role.ADMIN


@pytest.mark.asyncio
@pytest.mark.parametrize("password,name", [("pw", "Ann"), ("other", "Bob"), ("pw", "Ann Again")])
async def test_register_duplicate_email_fails(manager, password, name):
    await register(manager)

    with pytest.raises(DuplicateEmail):
        await register(manager, password=password, name=name)


@pytest.mark.asyncio
async def test_register_duplicate_email_ignores_case(manager):
    await register(manager, email="Ann@X.com")

    with pytest.raises(DuplicateEmail):
        await register(manager, email="ann@x.com")


@pytest.mark.asyncio
async def test_concurrent_registrations_yield_one_account(manager, store):
    results = await asyncio.gather(
        register(manager, name="First"),
        register(manager, name="Second"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], DuplicateEmail)
    assert len([r for r in results if not isinstance(r, Exception)]) == 1


@pytest.mark.asyncio
async def test_login_succeeds_with_correct_password(manager, codec):
    registered = await register(manager)

    result = await manager.login(LoginRequest(email="a@x.com", password="pw"))
    assert result.user.id == registered.user.id
    assert codec.verify_access(result.tokens.access_token).user_id == registered.user.id


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(manager):
    await register(manager)

    with pytest.raises(InvalidCredentials) as wrong_password:
        await manager.login(LoginRequest(email="a@x.com", password="wrong"))
    with pytest.raises(InvalidCredentials) as unknown_email:
        await manager.login(LoginRequest(email="nobody@x.com", password="pw"))

    assert type(wrong_password.value) is type(unknown_email.value)
    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status_code == unknown_email.value.status_code


@pytest.mark.asyncio
async def test_login_with_corrupt_stored_hash_fails_closed(manager, store):
    registered = await register(manager)
    await store.update(registered.user.id, {"password_hash": "corrupt"})

    with pytest.raises(InvalidCredentials):
        await manager.login(LoginRequest(email="a@x.com", password="pw"))


@pytest.mark.asyncio
async def test_refresh_issues_a_new_pair(manager, codec):
    registered = await register(manager)

    result = await manager.refresh(registered.tokens.refresh_token)
    assert result.tokens.access_token != registered.tokens.access_token
    assert result.tokens.refresh_token != registered.tokens.refresh_token
    assert result.user.role is Role.PATIENT
    assert codec.verify_access(result.tokens.access_token).user_id == registered.user.id


@pytest.mark.asyncio
async def test_refresh_token_remains_usable_after_rotation(manager):
    registered = await register(manager)

    await manager.refresh(registered.tokens.refresh_token)
    again = await manager.refresh(registered.tokens.refresh_token)
    assert again.user.id == registered.user.id


@pytest.mark.asyncio
async def test_refresh_picks_up_role_and_name_changes(manager, store, codec):
    registered = await register(manager)
    await store.update(registered.user.id, {"role": Role.DOCTOR, "name": "Dr Ann"})

    result = await manager.refresh(registered.tokens.refresh_token)
    identity = codec.verify_access(result.tokens.access_token)
    assert identity.role is Role.DOCTOR
    assert identity.name == "Dr Ann"
    assert result.user.role is Role.DOCTOR


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(manager):
    registered = await register(manager)

    with pytest.raises(InvalidToken):
        await manager.refresh(registered.tokens.access_token)


@pytest.mark.asyncio
async def test_refresh_for_deleted_user_fails(manager, store, codec):
    registered = await register(manager)
    await store.delete(registered.user.id)

    # The token itself still verifies
    assert codec.verify_refresh(registered.tokens.refresh_token).user_id == registered.user.id
    with pytest.raises(UserNotFound) as exc_info:
        await manager.refresh(registered.tokens.refresh_token)
    assert isinstance(exc_info.value, SessionUserNotFound)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_by_id(manager):
    registered = await register(manager)

    user = await manager.get_by_id(registered.user.id)
    assert user == registered.user

    with pytest.raises(UserNotFound):
        await manager.get_by_id("missing")


@pytest.mark.asyncio
async def test_list_doctors(manager):
    await register(manager, email="p@x.com")
    await register(manager, email="d1@x.com", name="Dr One", role=Role.DOCTOR)
    await register(manager, email="d2@x.com", name="Dr Two", role=Role.DOCTOR)

    doctors = await manager.list_doctors()
    assert sorted(d.email for d in doctors) == ["d1@x.com", "d2@x.com"]
    assert all(d.role is Role.DOCTOR for d in doctors)
    assert all("password" not in d.to_wire() for d in doctors)


@pytest.mark.asyncio
async def test_list_doctors_empty(manager):
    await register(manager)

    assert await manager.list_doctors() == []


@pytest.mark.asyncio
async def test_update_profile_changes_password_with_current(manager, store, hasher):
    registered = await register(manager)

    await manager.update_profile(
        registered.user.id,
        ProfileUpdate(current_password="pw", new_password="new-pw"),
    )

    record = await store.find_by_id(registered.user.id)
    assert hasher.verify("new-pw", record.password_hash)
    assert not hasher.verify("pw", record.password_hash)


@pytest.mark.asyncio
async def test_update_profile_new_password_without_current_is_ignored(manager, store):
    registered = await register(manager)
    before = (await store.find_by_id(registered.user.id)).password_hash

    await manager.update_profile(registered.user.id, ProfileUpdate(new_password="new-pw"))
    await manager.update_profile(registered.user.id, ProfileUpdate(current_password="pw"))

    assert (await store.find_by_id(registered.user.id)).password_hash == before


@pytest.mark.asyncio
async def test_update_profile_wrong_current_password(manager, store):
    registered = await register(manager)
    before = (await store.find_by_id(registered.user.id)).password_hash

    with pytest.raises(InvalidCredentials):
        await manager.update_profile(
            registered.user.id,
            ProfileUpdate(name="New Name", current_password="wrong", new_password="new-pw"),
        )

    record = await store.find_by_id(registered.user.id)
    assert record.password_hash == before
    assert record.name == "Ann"


@pytest.mark.asyncio
async def test_update_profile_name_and_image(manager):
    registered = await register(manager)

    user = await manager.update_profile(
        registered.user.id,
        ProfileUpdate(name="Annie", image="https://img.example.com/a.png"),
    )
    assert user.name == "Annie"
    assert user.image == "https://img.example.com/a.png"

    cleared = await manager.update_profile(registered.user.id, ProfileUpdate(image=None))
    assert cleared.image is None
    assert cleared.name == "Annie"


@pytest.mark.asyncio
async def test_update_profile_without_changes_is_a_no_op(manager):
    registered = await register(manager)

    assert await manager.update_profile(registered.user.id, ProfileUpdate()) == registered.user
    assert await manager.update_profile(registered.user.id, ProfileUpdate(name="Ann")) == registered.user


@pytest.mark.asyncio
async def test_update_profile_unknown_user(manager):
    with pytest.raises(UserNotFound):
        await manager.update_profile("missing", ProfileUpdate(name="X"))


@pytest.mark.asyncio
async def test_end_to_end_flow(manager):
    await register(manager, email="a@x.com", password="pw", name="Ann")

    login = await manager.login(LoginRequest(email="a@x.com", password="pw"))
    with pytest.raises(InvalidCredentials):
        await manager.login(LoginRequest(email="a@x.com", password="wrong"))

    refreshed = await manager.refresh(login.tokens.refresh_token)
    assert refreshed.user.role is login.user.role
