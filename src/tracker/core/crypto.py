"""
Шифрование резервных копий паролем пользователя.

AES-256-GCM с ключом, выведенным из пароля через PBKDF2-HMAC-SHA256.
Пароль нигде не сохраняется: без него зашифрованная копия нечитаема.
Используется библиотека cryptography.
"""

import asyncio
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from src.tracker.schemas import EncryptedBundle

from .config import settings
from .exceptions import DecryptionException, ValidationException
from .logging import tracker_log as log

SALT_SIZE = 16  # 128 бит
IV_SIZE = 12  # 96 бит, стандартный nonce для GCM
KEY_SIZE = 32  # 256 бит


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def derive_key(password: str, salt: bytes, iterations: int | None = None) -> bytes:
    """
    Выводит 256-битный симметричный ключ из пароля и соли.

    Args:
        password (str): Пароль пользователя.
        salt (bytes): Случайная соль.
        iterations (int | None): Количество итераций PBKDF2. Если None, берётся из настроек.

    Returns:
        bytes: Ключ длиной KEY_SIZE байт.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations or settings.KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, password: str, *, iterations: int | None = None) -> EncryptedBundle:
    """
    Шифрует строку паролем.

    Соль и nonce генерируются заново при каждом вызове, поэтому два шифрования
    одного и того же текста одним паролем дают разные результаты.

    Args:
        plaintext (str): Открытый текст.
        password (str): Пароль пользователя.
        iterations (int | None): Количество итераций PBKDF2. Если None, берётся из настроек.

    Returns:
        EncryptedBundle: Шифротекст (с тегом), соль и nonce в base64.

    Raises:
        ValidationException: Если пароль пустой.
    """
    if not password:
        raise ValidationException(message="Пароль шифрования не может быть пустым.", error_type="empty_password")

    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    key = derive_key(password, salt, iterations)

    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)

    return EncryptedBundle(
        ciphertext=_b64encode(ciphertext),
        salt=_b64encode(salt),
        iv=_b64encode(iv),
    )


def decrypt(bundle: EncryptedBundle, password: str, *, iterations: int | None = None) -> str:
    """
    Расшифровывает пакет паролем.

    Тег аутентификации GCM проверяется всегда: при неверном пароле или изменённых
    данных возвращается ошибка, а не "мусорный" открытый текст.

    Args:
        bundle (EncryptedBundle): Зашифрованный пакет.
        password (str): Пароль пользователя.
        iterations (int | None): Количество итераций PBKDF2. Если None, берётся из настроек.

    Returns:
        str: Открытый текст.

    Raises:
        DecryptionException: Неверный пароль или повреждённые данные.
    """
    try:
        salt = _b64decode(bundle.salt)
        iv = _b64decode(bundle.iv)
        ciphertext = _b64decode(bundle.ciphertext)
    except (binascii.Error, ValueError) as exc:
        log.warning(f"Зашифрованный пакет не декодируется из base64: {exc}")
        raise DecryptionException(
            message="Зашифрованные данные повреждены.",
            error_type="corrupted_bundle",
        ) from exc

    if len(iv) != IV_SIZE or not salt:
        log.warning(f"Некорректный размер nonce ({len(iv)}) или пустая соль в зашифрованном пакете.")
        raise DecryptionException(message="Зашифрованные данные повреждены.", error_type="corrupted_bundle")

    key = derive_key(password, salt, iterations)

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as exc:
        # Неверный пароль и подмена данных неотличимы: оба случая проваливают проверку тега
        log.info("Проверка тега AES-GCM не пройдена (неверный пароль или изменённые данные).")
        raise DecryptionException() from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionException(message="Расшифрованные данные не являются текстом.", error_type="corrupted_bundle") from exc


async def encrypt_data(plaintext: str, password: str, *, iterations: int | None = None) -> EncryptedBundle:
    """Асинхронная обёртка над `encrypt`: медленный вывод ключа выполняется в отдельном потоке."""
    return await asyncio.to_thread(encrypt, plaintext, password, iterations=iterations)


async def decrypt_data(bundle: EncryptedBundle, password: str, *, iterations: int | None = None) -> str:
    """Асинхронная обёртка над `decrypt`: медленный вывод ключа выполняется в отдельном потоке."""
    return await asyncio.to_thread(decrypt, bundle, password, iterations=iterations)
