"""Service settings for contact-vault.

All settings use the CONTACT_VAULT_ environment prefix and cover:
- Primary database connection
- Logging
- Search pagination limits
- CSV import batching
- The key of the shared display-settings record
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for contact-vault.

    Environment variable prefix: CONTACT_VAULT_
    """

    service_name: str = "contact-vault"

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------

    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/contact_vault",
        description="SQLAlchemy async connection URL for the contact database.",
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement. Leave off outside local debugging.",
    )
    pool_size: int = Field(
        default=5,
        description="Connection pool size for the primary database.",
    )
    create_schema_on_startup: bool = Field(
        default=True,
        description="Run metadata.create_all() during application startup.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="INFO", description="Root log level.")
    json_logs: bool = Field(
        default=True,
        description="Emit JSON log lines. Set false for coloured console output.",
    )

    # -------------------------------------------------------------------------
    # Search and import
    # -------------------------------------------------------------------------

    default_page_size: int = Field(
        default=20,
        description="Page size for contact listings when the caller gives none.",
    )
    max_page_size: int = Field(
        default=200,
        description="Upper bound on the page size a caller may request.",
    )
    import_batch_size: int = Field(
        default=100,
        description="Rows created between upload progress updates during CSV import.",
    )

    # -------------------------------------------------------------------------
    # Display settings
    # -------------------------------------------------------------------------

    settings_user_key: str = Field(
        default="default",
        description="Key of the display-settings record shared by all users.",
    )

    model_config = SettingsConfigDict(env_prefix="CONTACT_VAULT_")
