"""Process lookup utilities."""

from typing import Optional

import psutil

from ..utils.logging import get_logger

logger = get_logger("system.process")


class ProcessManager:
    """Looks up which local process holds a TCP port."""

    def find_process_by_port(self, port: int) -> Optional[str]:
        """
        Find process information for a given port.

        Args:
            port: Port number to check

        Returns:
            Process information string or None if not found
        """
        try:
            for conn in psutil.net_connections(kind="inet"):
                if conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN:
                    return self._describe(conn.pid)
        except psutil.AccessDenied:
            logger.debug("Not allowed to list system connections, scanning own processes")
        except psutil.Error as e:
            logger.error(f"Error finding process with psutil: {e}")
            return None

        for proc in psutil.process_iter(['pid', 'name']):
            try:
                for conn in proc.net_connections(kind='inet'):
                    if conn.laddr and conn.laddr.port == port:
                        return f"PID: {proc.pid}, Name: {proc.name()}"
            except (psutil.AccessDenied, psutil.NoSuchProcess):
                continue

        return None

    @staticmethod
    def _describe(pid: Optional[int]) -> Optional[str]:
        if pid is None:
            return None
        try:
            return f"PID: {pid}, Name: {psutil.Process(pid).name()}"
        except (psutil.AccessDenied, psutil.NoSuchProcess):
            return f"PID: {pid}"
