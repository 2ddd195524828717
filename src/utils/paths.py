from urllib.parse import quote_plus


def make_postgres_url(
    user: str, password: str, host: str, port: int, dbname: str
) -> str:
    return (
        f"postgresql://{quote_plus(user)}:{quote_plus(password)}"
        f"@{host}:{port}/{dbname}"
    )
