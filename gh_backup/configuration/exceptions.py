"""Contains exceptions raised when reconciling application configuration."""


class RequiredConfigurationElementError(Exception):
    """Raised when a required configuration element is missing."""

    def __init__(self, name: str, cli_name: str, env_name: str | None = None) -> None:
        """Initializes the exception with the name of the missing element."""
        message = f"Missing required configuration element: {name} (command line option {cli_name}"
        if env_name:
            message += f", environment variable {env_name}"
        super().__init__(message + ")")
        self.name = name
        self.cli_name = cli_name
        self.env_name = env_name


class InvalidConfigurationError(Exception):
    """Raised when a configuration value is present but not usable."""

    pass
