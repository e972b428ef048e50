"""
Post-allocation hooks

After a lease is handed to a DHCP client an external script can be run to
set up routes, firewall rules and the like. The script gets the lease on its
command line:

    script <ip> <client key> <hostname> <interface> <router ip>

It runs with a timeout and its failure never affects the lease itself.
"""

import logging
import subprocess

from ..common.addresses import sanitize, sanitize_hostname

logger = logging.getLogger(__name__)


class NullNotifier:
    """Used when no hook script is configured"""

    def notify(self, record, hostname='', interface=''):
        return True


class ScriptNotifier:
    """Run an executable for every lease handed out"""

    def __init__(self, script, timeout=10):
        self.script = script
        self.timeout = timeout

    def notify(self, record, hostname='', interface=''):
        """Run the hook script, returning False if it failed or timed out"""
        cmd = [
            self.script,
            record.ip,
            record.client_key,
            sanitize_hostname(hostname),
            sanitize(interface),
            record.router_ip,
        ]
        try:
            subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=True)
            return True
        except subprocess.TimeoutExpired:
            logger.warning(f"Hook {self.script} timed out after {self.timeout}s for {record.client_key}")
        except subprocess.CalledProcessError as e:
            logger.warning(f"Hook {self.script} failed with exit code {e.returncode} for "
                           f"{record.client_key}: {e.stderr.strip() if e.stderr else ''}")
        except OSError as e:
            logger.warning(f"Could not run hook {self.script}: {e}")
        return False


def get_notifier(config):
    if config.notify_script:
        return ScriptNotifier(config.notify_script, timeout=config.notify_timeout)
    return NullNotifier()
