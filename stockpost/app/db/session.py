from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from stockpost.app.core.config import get_settings

DATABASE_URL = get_settings().database_url

engine_kwargs = dict(pool_pre_ping=True)
if make_url(DATABASE_URL).get_backend_name() == "sqlite":
    # sessions are handed across threads by the bulk coordinator
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
