import logging
from dataclasses import dataclass
from typing import Optional

from consumables.application.ports import ConsumablesRepository, PasswordHasher, TokenService
from consumables.application.use_cases import Clock
from consumables.domain.dates import format_timestamp
from consumables.domain.models import LogEntry, UserSummary

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "사용자 ID 또는 비밀번호가 올바르지 않습니다."


@dataclass(frozen=True)
class LoginResult:
    success: bool
    message: str = ""
    token: Optional[str] = None
    user: Optional[UserSummary] = None
    redirect_url: Optional[str] = None


@dataclass(frozen=True)
class AuthResult:
    success: bool
    message: str


class LoginUseCase:
    def __init__(
        self,
        repository: ConsumablesRepository,
        hasher: PasswordHasher,
        tokens: TokenService,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._hasher = hasher
        self._tokens = tokens
        self._clock = clock

    async def execute(self, user_id: str, password: str) -> LoginResult:
        account = await self._repository.get_user(str(user_id or "").strip())
        if account is None:
            return LoginResult(success=False, message=INVALID_CREDENTIALS)
        if not self._hasher.verify(password or "", account.password_hash):
            return LoginResult(success=False, message=INVALID_CREDENTIALS)
        # Only reported once the password matched, so unknown ids stay indistinguishable.
        if not account.active:
            return LoginResult(success=False, message="비활성화된 계정입니다.")

        if self._hasher.needs_update(account.password_hash):
            await self._repository.update_user(
                account.user_id, {"password_hash": self._hasher.hash(password)}
            )
            logger.info(f"Upgraded password hash for {account.user_id}")

        user = account.summary()
        token = self._tokens.issue(user)
        await self._repository.append_log(
            LogEntry(
                timestamp=format_timestamp(self._clock()),
                level="INFO",
                action="로그인",
                actor=user.id,
            )
        )
        return LoginResult(
            success=True,
            token=token,
            user=user,
            redirect_url="/admin" if user.is_admin else "/dashboard",
        )


class ChangePasswordUseCase:
    def __init__(
        self,
        repository: ConsumablesRepository,
        hasher: PasswordHasher,
        clock: Clock,
    ) -> None:
        self._repository = repository
        self._hasher = hasher
        self._clock = clock

    async def execute(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        token_user: UserSummary,
    ) -> AuthResult:
        if token_user is None or token_user.id != user_id:
            return AuthResult(success=False, message="권한이 없습니다.")
        if not new_password:
            return AuthResult(success=False, message="새 비밀번호를 입력해 주세요.")
        account = await self._repository.get_user(user_id)
        if account is None:
            return AuthResult(success=False, message="사용자를 찾을 수 없습니다.")
        if account.password_hash and not self._hasher.verify(
            old_password or "", account.password_hash
        ):
            return AuthResult(success=False, message="기존 비밀번호가 올바르지 않습니다.")

        await self._repository.update_user(
            user_id, {"password_hash": self._hasher.hash(new_password)}
        )
        await self._repository.append_log(
            LogEntry(
                timestamp=format_timestamp(self._clock()),
                level="INFO",
                action="비밀번호 변경",
                actor=user_id,
            )
        )
        return AuthResult(success=True, message="비밀번호가 변경되었습니다.")
