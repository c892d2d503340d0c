from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from tradelab import __version__
from tradelab.utils.env import ENV


@dataclass(frozen=True)
class Settings:
    """
    A data class for application settings.

    Attributes:
        VERSION (str): The package version.
        environment (str): Deployment environment label.
        log_level (str): Default log level.
        data_dir (str): Directory of CSV bar files.
        default_initial_cash (float): Starting cash when a run omits it.
        default_symbols (List[str]): Symbols scanned by the suggestion service.
        batch_pretty (bool): Whether batch output JSON is indented.
        batch_indent (int): Indent width for pretty batch output.
    """

    VERSION: str = __version__
    environment: str = ENV.ENV
    log_level: str = ENV.LOG_LEVEL
    data_dir: str = ENV.DATA_DIR
    default_initial_cash: float = ENV.DEFAULT_INITIAL_CASH
    default_symbols: List[str] = field(default_factory=lambda: list(ENV.DEFAULT_SYMBOLS))
    batch_pretty: bool = ENV.BATCH_PRETTY
    batch_indent: int = ENV.BATCH_INDENT


settings = Settings()

__all__ = ["settings", "Settings"]
