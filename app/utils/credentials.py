import re
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

# No 0/O, 1/l/I look-alikes
PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789@#$%!"
PASSWORD_LENGTH = 12

TRANSLIT = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "e",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "kh", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "shch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    # Kazakh
    "ә": "a", "ғ": "g", "қ": "q", "ң": "n", "ө": "o", "ұ": "u", "ү": "u", "һ": "h", "і": "i",
}


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def transliterate(text: str) -> str:
    latin = "".join(TRANSLIT.get(char, char) for char in text.lower())
    return re.sub(r"[^a-z0-9]", "", latin)


def base_login(full_name: str) -> str:
    """Surname plus the first letter of the given name: "Иванов Иван" -> "ivanovi"."""
    parts = full_name.split()
    if not parts:
        return "user"
    login = transliterate(parts[0])
    if len(parts) >= 2:
        login += transliterate(parts[1][:1])
    return login or "user"


async def generate_login(db: AsyncSession, full_name: str) -> str:
    base = base_login(full_name)
    login = base
    counter = 1
    while (await db.execute(select(User.id).where(User.login == login))).first() is not None:
        login = f"{base}{counter}"
        counter += 1
    return login
