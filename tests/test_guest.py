#
# Hostname configuration over ssh
#

import subprocess
from unittest import TestCase
from unittest.mock import patch

from vmdns.exceptions import GuestConfigurationError
from vmdns.guest import GuestConfigurator


def _completed(returncode=0, stdout='', stderr=''):
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


@patch('vmdns.guest.subprocess.run')
class TestGuestConfigurator(TestCase):
    def setUp(self):
        self.guest = GuestConfigurator('ops', connect_timeout=10, known_hosts='/tmp/known_hosts')

    def test_set_hostname(self, run):
        run.return_value = _completed(0)
        self.guest.set_hostname('10.0.0.5', 'web2')

        keygen, ssh = run.call_args_list
        self.assertEqual(['ssh-keygen', '-f', '/tmp/known_hosts', '-R', '10.0.0.5'], keygen.args[0])

        command = ssh.args[0]
        self.assertEqual(
            ['ssh', '-o', 'StrictHostKeyChecking=no', '-o', 'ConnectTimeout=10', 'ops@10.0.0.5'],
            command[:-1],
        )
        self.assertEqual(
            "sudo hostnamectl set-hostname web2 && sudo sed -i 's/127.0.1.1.*/127.0.1.1 web2/g' /etc/hosts",
            command[-1],
        )

    def test_ssh_failure(self, run):
        run.side_effect = [_completed(0), _completed(255, stderr='Permission denied (publickey).')]
        with self.assertRaises(GuestConfigurationError) as ctx:
            self.guest.set_hostname('10.0.0.5', 'web2')
        self.assertIn('Permission denied', str(ctx.exception))
        self.assertIn('VM is running with IP: 10.0.0.5', str(ctx.exception))

    def test_ssh_timeout(self, run):
        run.side_effect = [_completed(0), subprocess.TimeoutExpired('ssh', 70)]
        with self.assertRaises(GuestConfigurationError):
            self.guest.set_hostname('10.0.0.5', 'web2')

    def test_known_hosts_failure_is_ignored(self, run):
        run.side_effect = [FileNotFoundError('ssh-keygen'), _completed(0)]
        self.guest.set_hostname('10.0.0.5', 'web2')
        self.assertEqual(2, run.call_count)

    def test_reboot(self, run):
        run.return_value = _completed(255)
        self.guest.reboot('10.0.0.5')
        self.assertEqual(
            ['ssh', '-o', 'StrictHostKeyChecking=no', 'ops@10.0.0.5', 'sudo reboot'],
            run.call_args.args[0],
        )

        run.side_effect = subprocess.TimeoutExpired('ssh', 40)
        self.guest.reboot('10.0.0.5')
