"""
도메인 예외 계층

각 예외는 로그용 메시지와 사용자 노출용 메시지(user_message)를 따로 가진다.
"""


class FlagQuizError(Exception):
    """기본 예외"""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


# ── 호출자 오류 (재시도 없음) ─────────────────────────

class AuthenticationRequiredError(FlagQuizError):
    """인증된 사용자 없이 호출됨"""
    def __init__(self, operation: str):
        super().__init__(
            f"{operation} requires an authenticated caller",
            "로그인이 필요합니다.",
        )


class AdminRequiredError(FlagQuizError):
    """관리자 권한 없음"""
    def __init__(self):
        super().__init__("caller lacks admin role", "관리자만 사용할 수 있습니다.")


class WebhookSignatureError(FlagQuizError):
    """웹훅 서명 검증 실패 (또는 시크릿 미설정)"""
    def __init__(self, reason: str):
        super().__init__(
            f"Webhook signature verification failed: {reason}",
            "웹훅 서명 검증에 실패했습니다.",
        )


class MalformedEventError(FlagQuizError):
    """본문을 이벤트로 해석할 수 없음"""
    def __init__(self, reason: str):
        super().__init__(f"Malformed webhook body: {reason}", "잘못된 웹훅 본문입니다.")


class UnknownFeatureError(FlagQuizError):
    """접근 정책 표에 없는 기능"""
    def __init__(self, feature: str):
        super().__init__(f"Unknown feature '{feature}'", "존재하지 않는 퀴즈입니다.")
        self.feature = feature


# ── 용량 오류 ───────────────────────────────────────

class AccountCapacityError(FlagQuizError):
    """저장된 계정 수 한도 초과"""
    def __init__(self, limit: int):
        super().__init__(
            f"saved account limit of {limit} reached",
            f"저장할 수 있는 계정은 최대 {limit}개입니다. 프리미엄으로 업그레이드하면 무제한으로 저장할 수 있습니다.",
        )
        self.limit = limit


# ── 일시적 저장소 오류 ───────────────────────────────

class StorageUnavailableError(FlagQuizError):
    """저장소 실패/타임아웃 (호출자가 재시도 여부 결정)"""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Storage error during {operation}: {details}",
            "저장소 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        )
        self.operation = operation
