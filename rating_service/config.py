import os

PGHOST = os.getenv("PGHOST")
PGPORT = int(os.getenv("PGPORT", "5432"))
PGUSER = os.getenv("PGUSER")
PGPASSWORD = os.getenv("PGPASSWORD", "")
PGDATABASE = os.getenv("PGDATABASE")


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if PGHOST and PGUSER and PGDATABASE:
        return f"postgresql+psycopg2://{PGUSER}:{PGPASSWORD}@{PGHOST}:{PGPORT}/{PGDATABASE}"
    return "sqlite:///./ratings.db"


CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:4200").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
NOTIFY_COMMENT_PREVIEW = int(os.getenv("NOTIFY_COMMENT_PREVIEW", "50"))
