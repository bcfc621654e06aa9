"""
Default settings. Anything secret comes from the environment
(``LOCALLIBRARY_*`` variables) or from the mapping given to ``create_app``.
"""


class Config:
    # None means: SQLite file in the instance folder, filled in by create_app.
    SQLALCHEMY_DATABASE_URI = None
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = None
    WTF_CSRF_ENABLED = True
    LOG_LEVEL = "INFO"
    OPENLIBRARY_LOOKUP = True
    OPENLIBRARY_TIMEOUT = 8
