import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from app.core.auth import get_current_account, get_database, get_storage, get_token_codec, require_admin
from app.core.errors import Forbidden, NotFound, Unauthorized, UpstreamFailure, ValidationError
from app.core.responses import ok
from app.core.security import TokenCodec, get_password_hash, verify_password
from app.db.dynamo import Database
from app.models.user import ProfileUpdate, StatusUpdate, UserCreate, UserInDB, UserLogin, UserPublic
from app.utils.storage import ALLOWED_IMAGE_TYPES, AvatarStorage

router = APIRouter()
logger = logging.getLogger(__name__)


def public(account: UserInDB) -> dict:
    return UserPublic(**account.model_dump(exclude={"password_hash"})).model_dump()


def account_stats(database: Database, user_id: str) -> dict:
    return {
        "income_count": database.incomes.count(user_id),
        "expense_count": database.expenses.count(user_id),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    user: UserCreate,
    database: Database = Depends(get_database),
    codec: TokenCodec = Depends(get_token_codec),
):
    settings = request.app.state.settings
    welcome = None
    if settings.CREATE_WELCOME_INCOME:
        # Checked before the account is written
        welcome = database.incomes.validate(
            {
                "title": "Welcome Bonus",
                "amount": settings.WELCOME_INCOME_AMOUNT,
                "category": settings.WELCOME_INCOME_CATEGORY,
                "description": "Starting balance",
            }
        )

    account = database.accounts.create(
        UserInDB(
            email=user.email,
            password_hash=get_password_hash(user.password),
            first_name=user.first_name,
            last_name=user.last_name,
        )
    )
    logger.info(f"Registered user {account.user_id}")

    if welcome is not None:
        database.incomes.create(account.user_id, welcome)

    return ok(
        {"user": public(account), "token": codec.issue(account.user_id)},
        message="User registered successfully",
    )


@router.post("/login")
def login(
    login_data: UserLogin,
    database: Database = Depends(get_database),
    codec: TokenCodec = Depends(get_token_codec),
):
    logger.info(f"Login attempt for email: {login_data.email}")
    user = database.accounts.get_by_email(login_data.email)

    if not user or not verify_password(login_data.password, user.password_hash):
        logger.warning(f"Invalid credentials for: {login_data.email}")
        raise Unauthorized("Invalid credentials", code="invalid_credentials")
    if user.is_suspended:
        raise Unauthorized("Account is suspended", code="account_suspended")

    return ok(
        {
            "user": public(user),
            "token": codec.issue(user.user_id),
            "stats": account_stats(database, user.user_id),
        },
        message="Login successful",
    )


@router.get("/profile")
def get_profile(
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
):
    return ok({"user": public(account), "stats": account_stats(database, account.user_id)})


@router.put("/profile")
def update_profile(
    updates: ProfileUpdate,
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
):
    changes = updates.model_dump(exclude_unset=True)
    for name in ("first_name", "last_name"):
        if name in changes and changes[name] is not None:
            changes[name] = changes[name].strip()
            if not changes[name]:
                raise ValidationError([f"{name}: must not be blank"])
    updated = database.accounts.update(account.user_id, changes)
    return ok({"user": public(updated)}, message="Profile updated successfully")


@router.delete("/profile")
def delete_profile(
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    storage: AvatarStorage = Depends(get_storage),
):
    removed = database.delete_account(account.user_id)
    if account.profile_image_url:
        storage.delete_avatar(account.profile_image_url)
    logger.info(f"Deleted user {account.user_id} with {removed}")
    return ok({"deleted": removed}, message="Account deleted successfully")


@router.post("/profile/avatar")
def upload_avatar(
    request: Request,
    file: UploadFile = File(...),
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    storage: AvatarStorage = Depends(get_storage),
):
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError([f"file: Unsupported image type {file.content_type}"])
    data = file.file.read()
    max_bytes = request.app.state.settings.AVATAR_MAX_BYTES
    if not data:
        raise ValidationError(["file: Image is empty"])
    if len(data) > max_bytes:
        raise ValidationError([f"file: Image exceeds {max_bytes} bytes"])

    result = storage.upload_avatar(account.user_id, data, file.content_type)
    if not result.ok:
        raise UpstreamFailure("Failed to upload profile image", details=result.error)

    previous = account.profile_image_url
    updated = database.accounts.update(account.user_id, {"profile_image_url": result.url})
    if previous:
        storage.delete_avatar(previous)
    return ok({"user": public(updated)}, message="Profile image updated")


@router.put("/admin/accounts/{user_id}/status")
def set_account_status(
    user_id: str,
    body: StatusUpdate,
    admin: UserInDB = Depends(require_admin),
    database: Database = Depends(get_database),
):
    if user_id == admin.user_id:
        raise Forbidden("Admins cannot change their own status")
    if database.accounts.get_by_id(user_id) is None:
        raise NotFound("User not found")
    updated = database.accounts.update(user_id, {"status": body.status})
    logger.info(f"Admin {admin.user_id} set user {user_id} status to {body.status.value}")
    return ok({"user": public(updated)}, message=f"Account {body.status.value}")
