import bcrypt

# Hash usado quando o email não existe, para o tempo de resposta do login não revelar contas
_DUMMY_HASH = bcrypt.hashpw(b"dreamlog-dummy-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str = None) -> bool:
    hashed = password_hash or _DUMMY_HASH
    try:
        ok = bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Hash corrompido/formato inválido
        return False
    return ok and password_hash is not None
