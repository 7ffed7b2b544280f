# This file is part of the agentloop project for logging and console management.
# Author: Shibo Li
# Date: 2025-07-02
# Version: 0.2.0

import logging
from rich.logging import RichHandler
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

# Define a custom logging level for success messages
SUCCESS_LEVEL_NUM = 25

LOGGER_NAME = "agentloop"

logging.addLevelName(SUCCESS_LEVEL_NUM, "SUCCESS")


class ConsoleManager:
    """
    A singleton class that manages the console output for agentloop.
    It uses Rich for logging and for the run statistics panel.
    """
    def __init__(self, level: str = "INFO"):
        custom_theme = Theme({
            "logging.level.success": "bold green"
        })
        self._console = Console(theme=custom_theme, stderr=True)
        self._logger = self._setup_logger(level)

    def _setup_logger(self, level: str) -> logging.Logger:
        logger = logging.getLogger(LOGGER_NAME)
        if logger.handlers:
            # Already configured by an earlier instance; don't add handlers again
            return logger

        logger.setLevel(level.upper())
        handler = RichHandler(
            console=self._console,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            keywords=["INFO", "SUCCESS", "WARNING", "ERROR", "DEBUG", "CRITICAL"],
            show_path=False
        )
        handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
        return logger

    def set_level(self, level: str):
        self._logger.setLevel(level.upper())

    # Define logging methods
    def debug(self, message: str):
        self._logger.debug(message)

    def info(self, message: str):
        self._logger.info(message)

    def success(self, message: str):
        self._logger.log(SUCCESS_LEVEL_NUM, message)

    def warning(self, message: str):
        self._logger.warning(message)

    def error(self, message: str):
        self._logger.error(message)

    def exception(self, message: str):
        self._logger.exception(message)

    # Define higher-level console methods
    def rule(self, title: str, style: str = "cyan"):
        if self._logger.isEnabledFor(logging.DEBUG):
            self._console.rule(f"[bold {style}]{title}[/bold {style}]", style=style)

    def display_usage_table(self, usage: dict, title: str):
        table = Table(show_header=True, header_style="bold magenta", box=None, show_edge=False)
        table.add_column("Statistic", style="cyan", no_wrap=True, width=20)
        table.add_column("Value", style="white")

        for key, value in usage.items():
            if isinstance(value, float):
                table.add_row(key, f"{value:,.2f}")
            else:
                table.add_row(key, f"{value:,}" if isinstance(value, int) else str(value))

        panel = Panel(table, title=f"[bold green]✓ {title}[/bold green]", border_style="green")
        self._console.print(panel)

    def display_error_panel(self, title: str, error_message: str):
        panel = Panel(error_message, title=f"[bold red]{title}[/bold red]", border_style="red")
        self._console.print(panel)


# Create a singleton instance for global use
console = ConsoleManager()
