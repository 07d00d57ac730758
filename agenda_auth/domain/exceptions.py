from __future__ import annotations


class DomainError(Exception):
    """Base para erros de dominio."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Dados de entrada invalidos."""

    code = "VALIDATION_ERROR"


class PasswordTooShortError(ValidationError):
    """Senha abaixo do tamanho minimo."""

    code = "PASSWORD_TOO_SHORT"


class PasswordTooLongError(ValidationError):
    """Senha acima do tamanho maximo."""

    code = "PASSWORD_TOO_LONG"


class PasswordTooWeakError(ValidationError):
    """Senha nao atende a politica de complexidade."""

    code = "PASSWORD_TOO_WEAK"


class PasswordMismatchError(ValidationError):
    """Senha e confirmacao nao conferem."""

    code = "PASSWORD_MISMATCH"


class UserAlreadyExistsError(DomainError):
    """Email ou telefone ja cadastrado."""

    code = "USER_EXISTS"


class InvalidCredentialsError(DomainError):
    """Email ou senha invalidos."""

    code = "INVALID_CREDENTIALS"


class UserBlockedError(DomainError):
    """Usuario bloqueado por excesso de tentativas."""

    code = "USER_BLOCKED"


class UserInactiveError(DomainError):
    """Usuario nao esta ativo."""

    code = "USER_INACTIVE"


class UserNotFoundError(DomainError):
    """Usuario nao encontrado."""

    code = "USER_NOT_FOUND"


class InvalidTokenError(DomainError):
    """Token invalido, malformado ou de tipo errado."""

    code = "INVALID_TOKEN"


class ExpiredTokenError(InvalidTokenError):
    """Token assinado corretamente, porem expirado."""


class EmailNotFoundError(DomainError):
    """Nenhum usuario com o email informado."""

    code = "EMAIL_NOT_FOUND"


class PhoneNotFoundError(DomainError):
    """Nenhum usuario com o telefone informado."""

    code = "PHONE_NOT_FOUND"


class TooManyRequestsError(DomainError):
    """Limite de solicitacoes de recuperacao atingido."""

    code = "TOO_MANY_REQUESTS"


class RecoveryTokenLookupError(DomainError):
    """Falha ao resolver um token de recuperacao."""

    code = "INVALID_TOKEN"


class RecoveryTokenNotFoundError(RecoveryTokenLookupError):
    """Token de recuperacao inexistente."""


class RecoveryTokenUsedError(RecoveryTokenLookupError):
    """Token de recuperacao ja utilizado."""


class RecoveryTokenExpiredError(RecoveryTokenLookupError):
    """Token de recuperacao expirado."""


class RecoveryTokenRevokedError(RecoveryTokenLookupError):
    """Token de recuperacao revogado."""


class NotificationDeliveryError(DomainError):
    """Falha ao entregar uma notificacao."""

    code = "DELIVERY_FAILED"

    def __init__(self, message: str, *, channel: str):
        super().__init__(message)
        self.channel = channel


class NotificationProviderNotConfiguredError(NotificationDeliveryError):
    """Nenhum provedor configurado para o canal."""


class NotificationTransportError(NotificationDeliveryError):
    """Provedor rejeitou a mensagem ou falhou no transporte."""
