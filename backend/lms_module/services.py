import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .errors import AccountDisabled, Conflict, InvalidCredentials, NotFound, ValidationError
from .models import Account, Role, SchoolClass, UserRole
from .security import create_access_token, hash_password, password_fits_bcrypt, verify_password

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _role_row(db: Session, role: UserRole) -> Role:
    row = db.query(Role).filter(Role.name == role.value).first()
    if row is None:
        # Roles are seeded at startup; a missing row means the bootstrap never ran.
        raise RuntimeError(f"Role '{role.value}' is not seeded")
    return row


def login_user(db: Session, *, identifier: str, password: str) -> tuple[str, Account]:
    identifier = identifier.strip()
    user = (
        db.query(Account)
        .filter(or_(Account.username == identifier, Account.student_code == identifier))
        .first()
    )
    if not user or not verify_password(password, user.password_hash):
        logger.info(f"Failed login for identifier '{identifier}'")
        raise InvalidCredentials()
    if not user.is_active:
        logger.info(f"Login refused for disabled account id={user.id}")
        raise AccountDisabled()

    token = create_access_token(account_id=user.id, role=user.role)
    return token, user


def change_password(db: Session, *, account: Account, new_password: str) -> Account:
    if not password_fits_bcrypt(new_password):
        raise ValidationError("Password is too long")
    account.password_hash = hash_password(new_password)
    account.must_change_password = False
    db.commit()
    db.refresh(account)
    return account


def create_account(
    db: Session,
    *,
    full_name: str,
    role: UserRole,
    username: str | None = None,
    student_code: str | None = None,
    class_id: int | None = None,
    raw_password: str | None = None,
) -> Account:
    username = _clean(username)
    student_code = _clean(student_code)
    if not username and not student_code:
        raise ValidationError("Username or student code is required")
    if raw_password and not password_fits_bcrypt(raw_password):
        raise ValidationError("Password is too long")
    if class_id is not None:
        if role != UserRole.STUDENT:
            raise ValidationError("Only students can be assigned to a class")
        if not db.query(SchoolClass).filter(SchoolClass.id == class_id).first():
            raise NotFound("Class not found")

    account = Account(
        username=username,
        student_code=student_code,
        full_name=full_name.strip(),
        role_id=_role_row(db, role).id,
        class_id=class_id,
        password_hash=hash_password(raw_password or settings.default_user_password),
        must_change_password=True,
        is_active=True,
    )
    db.add(account)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Username or Student Code already exists") from exc
    db.refresh(account)
    logger.info(f"Created {role.value} account id={account.id}")
    return account


def list_accounts(db: Session) -> list[Account]:
    return db.query(Account).order_by(Account.id).all()


def set_account_active(db: Session, *, account_id: int, is_active: bool, actor: Account) -> Account:
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise NotFound("User not found")
    if account.id == actor.id and not is_active:
        raise ValidationError("You cannot disable your own account")

    account.is_active = is_active
    db.commit()
    db.refresh(account)
    logger.info(f"Account id={account.id} is_active={is_active} (by id={actor.id})")
    return account


def seed_roles(db: Session) -> None:
    existing = {name for (name,) in db.query(Role.name).all()}
    for role in UserRole:
        if role.value not in existing:
            db.add(Role(name=role.value))
    db.commit()


def seed_default_admin(db: Session) -> Account | None:
    admin_role = _role_row(db, UserRole.ADMIN)
    if db.query(Account).filter(Account.role_id == admin_role.id).first():
        return None

    admin = Account(
        username=settings.bootstrap_admin_username,
        full_name=settings.bootstrap_admin_full_name,
        role_id=admin_role.id,
        password_hash=hash_password(settings.bootstrap_admin_password),
        must_change_password=True,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.warning(
        f"Initial admin created: '{admin.username}' with the bootstrap password; "
        "a password change is required at first login"
    )
    return admin
