from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from consumables.application.ports import PasswordHasher, TokenService
from consumables.domain.models import UserRole, UserSummary

# bcrypt for new hashes; unsalted SHA-256 hex digests from older workbooks
# still verify and are reported as needing an update.
pwd_context = CryptContext(schemes=["bcrypt", "hex_sha256"], deprecated="auto")


class BcryptPasswordHasher(PasswordHasher):
    def __init__(self, context: CryptContext = pwd_context) -> None:
        self._context = context

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            # Not a hash format we recognise.
            return False

    def needs_update(self, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return self._context.needs_update(password_hash)
        except ValueError:
            return False


class JwtTokenService(TokenService):
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60 * 24,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire_minutes = expire_minutes

    def issue(self, user: UserSummary) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self._expire_minutes)
        payload = {
            "sub": user.id,
            "role": user.role.value,
            "name": user.name,
            "team": user.team,
            "employeeCode": user.employee_code,
            "region": user.region,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[UserSummary]:
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None
        user_id = payload.get("sub")
        if not user_id:
            return None
        return UserSummary(
            id=user_id,
            name=payload.get("name") or "",
            role=UserRole.parse(payload.get("role")),
            team=payload.get("team") or "",
            employee_code=payload.get("employeeCode") or "",
            region=payload.get("region") or "",
        )
