"""Rich console utilities for consistent output formatting."""

from rich.console import Console
from rich.markup import escape


class ForwardConsole:
    """Wrapper around Rich Console with consistent styling."""

    def __init__(self):
        self.console = Console()

    def print_success(self, message: str) -> None:
        """Print success message in green."""
        self.console.print(f"✓ {message}", style="green")

    def print_error(self, message: str) -> None:
        """Print error message in red."""
        self.console.print(f"✗ {message}", style="red bold")

    def print_warning(self, message: str) -> None:
        """Print warning message in yellow."""
        self.console.print(f"⚠ {message}", style="yellow")

    def print_info(self, message: str) -> None:
        """Print info message in cyan."""
        self.console.print(f"ℹ {message}", style="cyan")

    def print_banner(self, local: str, ssh_host: str, remote: str) -> None:
        """Print the three addresses the forwarder works with."""
        self.console.print(
            f"Listening: [cyan]{escape(local)}[/cyan]; "
            f"SSH Host: [magenta]{escape(ssh_host)}[/magenta]; "
            f"Forwarding: [yellow]{escape(remote)}[/yellow]"
        )


console = ForwardConsole()
