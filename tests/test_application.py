#
# Start and clone workflows end to end, with hypervisor, provider HTTP and
# resolver replaced by mocks
#

from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import Mock, patch

import dns.resolver

from vmdns.api import CloudflareClient
from vmdns.application import Application
from vmdns.exceptions import APIError, DiscoveryTimeout, GuestConfigurationError, HypervisorError, ZoneNotFoundError
from vmdns.models import Create, DomainState, GuestInterface, Skip, Update


def _config(**overrides):
    values = dict(
        cf_api_token='tok', cf_api_email='', cf_auth_mode='token', cf_domain='example.com',
        cf_base_url='https://api.cloudflare.com/client/v4', cf_timeout=30, cf_retry_attempts=3,
        dns_ttl=120, dns_proxied=False, dns_trust_local_resolver=True,
        discovery_max_attempts=12, discovery_delay_seconds=10,
        discovery_boot_wait=15, discovery_clone_boot_wait=30,
        network_prime_subnet='192.168.122.0/24', network_ping_workers=64, network_settle_seconds=3,
        hypervisor_uri='qemu:///system', hypervisor_timeout=30,
        clone_template='ubuntu22.04', clone_ssh_user='ops', clone_ssh_connect_timeout=10,
        clone_shutdown_poll=5, clone_shutdown_timeout=300, clone_update_dns=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _response(payload):
    response = Mock()
    response.status_code = 200
    response.ok = True
    response.json.return_value = payload
    return response


def _answer(*addresses):
    return [Mock(**{'to_text.return_value': address}) for address in addresses]


class WorkflowTestCase(TestCase):
    def setUp(self):
        self.hypervisor = Mock()
        self.hypervisor.domain_state.return_value = DomainState.RUNNING
        self.hypervisor.domain_interfaces.return_value = [
            GuestInterface('eth0', '52:54:00:ab:cd:ef', [('ipv4', '10.0.0.5')]),
        ]
        self.neighbors = Mock()
        self.guest = Mock()
        self.resolver = Mock()
        self.resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
        self.sleep = Mock()

        self.zones = [{'id': 'z1', 'name': 'example.com'}]
        self.records = []
        self.http = Mock()
        self.http.get.side_effect = self._provider_get
        self.http.post.return_value = _response({'success': True, 'result': {'id': 'new'}})
        self.http.put.return_value = _response({'success': True, 'result': {'id': 'rec123'}})

    def _provider_get(self, endpoint=None, headers=None, params=None):
        if endpoint == '/zones':
            return _response({'success': True, 'result': self.zones})
        return _response({'success': True, 'result': self.records})

    def app(self, **config):
        return Application(
            _config(**config),
            Mock(),
            hypervisor=self.hypervisor,
            client=CloudflareClient('tok', http=self.http),
            neighbors=self.neighbors,
            guest=self.guest,
            resolver=self.resolver,
            sleep=self.sleep,
        )


class TestStartWorkflow(WorkflowTestCase):
    def test_converged_record_is_skipped(self):
        self.resolver.resolve.side_effect = None
        self.resolver.resolve.return_value = _answer('10.0.0.5')
        self.records = [{'id': 'rec123', 'type': 'A', 'name': 'web1.example.com', 'content': '10.0.0.5'}]

        ctx = self.app().run_start('web1')

        self.assertEqual('10.0.0.5', ctx.address)
        self.assertEqual(Skip(), ctx.decision)
        self.http.post.assert_not_called()
        self.http.put.assert_not_called()
        self.resolver.resolve.assert_called_once_with('web1.example.com', 'A', lifetime=5.0)

    def test_missing_record_is_created(self):
        ctx = self.app().run_start('web1')

        self.assertEqual(Create(fqdn='web1.example.com', record_name='web1', address='10.0.0.5'), ctx.decision)
        self.http.put.assert_not_called()
        self.http.post.assert_called_once()
        kwargs = self.http.post.call_args.kwargs
        self.assertEqual('/zones/z1/dns_records', kwargs['endpoint'])
        self.assertEqual(
            {'type': 'A', 'name': 'web1', 'content': '10.0.0.5', 'ttl': 120, 'proxied': False},
            kwargs['json_data'],
        )

    def test_stale_record_is_updated(self):
        self.records = [{'id': 'rec123', 'type': 'A', 'name': 'web1.example.com', 'content': '10.0.0.4'}]

        ctx = self.app().run_start('web1')

        self.assertIsInstance(ctx.decision, Update)
        self.http.post.assert_not_called()
        kwargs = self.http.put.call_args.kwargs
        self.assertEqual('/zones/z1/dns_records/rec123', kwargs['endpoint'])
        self.assertEqual('10.0.0.5', kwargs['json_data']['content'])

    def test_running_vm_is_not_started(self):
        self.app().run_start('web1')
        self.hypervisor.start_domain.assert_not_called()
        self.sleep.assert_not_called()

    def test_stopped_vm_is_started(self):
        self.hypervisor.domain_state.return_value = DomainState.STOPPED
        self.app().run_start('web1')
        self.hypervisor.start_domain.assert_called_once_with('web1')
        self.sleep.assert_called_once_with(15)

    def test_fqdn_vm_name(self):
        ctx = self.app().run_start('web1.example.com')
        self.assertEqual('web1', ctx.hostname.record_name)
        self.assertEqual('web1.example.com', ctx.hostname.fqdn)
        self.assertEqual('web1', self.http.post.call_args.kwargs['json_data']['name'])

    def test_unknown_zone_fails_before_vm_is_touched(self):
        self.zones = []
        with self.assertRaises(ZoneNotFoundError):
            self.app().run_start('web1')
        self.hypervisor.domain_state.assert_not_called()
        self.hypervisor.start_domain.assert_not_called()

    def test_discovery_timeout(self):
        self.hypervisor.domain_interfaces.return_value = []
        self.hypervisor.guest_agent_ping.return_value = False
        self.hypervisor.domain_definition_xml.return_value = ''

        with self.assertRaises(DiscoveryTimeout) as ctx:
            self.app(discovery_max_attempts=3).run_start('web1')

        self.assertEqual(3, ctx.exception.attempts)
        self.assertEqual([10, 10], [c.args[0] for c in self.sleep.call_args_list])
        self.http.post.assert_not_called()
        self.http.put.assert_not_called()

    def test_provider_error_propagates(self):
        self.http.post.side_effect = APIError('boom', status_code=400, body='bad')
        with self.assertRaises(APIError):
            self.app().run_start('web1')

    def test_provider_only_mode_ignores_stale_local_answer(self):
        self.resolver.resolve.side_effect = None
        self.resolver.resolve.return_value = _answer('10.0.0.4')
        self.records = [{'id': 'rec123', 'type': 'A', 'content': '10.0.0.5'}]

        ctx = self.app(dns_trust_local_resolver=False).run_start('web1')

        self.assertEqual(Skip(), ctx.decision)
        self.http.put.assert_not_called()


class TestCloneWorkflow(WorkflowTestCase):
    def setUp(self):
        super().setUp()
        self.hypervisor.domain_exists.return_value = False
        self.hypervisor.clone_domain.return_value = '52:54:00:12:34:56'

    def test_clone_from_running_template(self):
        self.hypervisor.domain_state.side_effect = [
            DomainState.RUNNING, DomainState.RUNNING, DomainState.STOPPED,
        ]

        ctx = self.app().run_clone('web2')

        self.hypervisor.shutdown_domain.assert_called_once_with('ubuntu22.04')
        self.hypervisor.clone_domain.assert_called_once_with('ubuntu22.04', 'web2')
        self.hypervisor.start_domain.assert_called_once_with('web2')
        self.assertEqual([5, 30], [c.args[0] for c in self.sleep.call_args_list])
        self.guest.set_hostname.assert_called_once_with('10.0.0.5', 'web2')
        self.guest.reboot.assert_called_once_with('10.0.0.5')
        self.assertIsNone(ctx.decision)
        self.http.get.assert_not_called()

    def test_template_never_stops(self):
        self.hypervisor.domain_state.return_value = DomainState.RUNNING
        with self.assertRaises(HypervisorError):
            self.app(clone_shutdown_timeout=10).run_clone('web2')
        self.hypervisor.clone_domain.assert_not_called()
        self.assertEqual([5, 5], [c.args[0] for c in self.sleep.call_args_list])

    def test_existing_domain_is_reused(self):
        self.hypervisor.domain_exists.return_value = True

        self.app().run_clone('web2')

        self.hypervisor.clone_domain.assert_not_called()
        self.hypervisor.start_domain.assert_not_called()
        self.guest.set_hostname.assert_called_once_with('10.0.0.5', 'web2')

    @patch('vmdns.hypervisor.subprocess.run')
    def test_neighbor_fallback_primes_once(self, ping):
        self.hypervisor.domain_exists.return_value = True
        self.hypervisor.domain_interfaces.return_value = []
        self.hypervisor.guest_agent_ping.return_value = False
        self.hypervisor.domain_definition_xml.return_value = (
            "<domain><devices><interface type='network'>"
            "<mac address='52:54:00:12:34:56'/></interface></devices></domain>"
        )
        self.neighbors.table.side_effect = [
            '',
            '192.168.122.77 dev virbr0 lladdr 52:54:00:12:34:56 REACHABLE\n',
        ]

        app = self.app(network_prime_subnet='192.168.122.0/30')
        ctx = app.run_clone('web2')

        self.assertEqual('192.168.122.77', ctx.address)
        self.assertEqual(2, self.neighbors.table.call_count)
        self.sleep.assert_called_once_with(3)

    def test_clone_with_dns_update(self):
        self.hypervisor.domain_state.return_value = DomainState.STOPPED

        ctx = self.app(clone_update_dns=True).run_clone('web2')

        self.assertEqual(Create(fqdn='web2.example.com', record_name='web2', address='10.0.0.5'), ctx.decision)
        self.http.post.assert_called_once()
        self.guest.set_hostname.assert_called_once()

    def test_guest_failure_propagates(self):
        self.hypervisor.domain_state.return_value = DomainState.STOPPED
        self.guest.set_hostname.side_effect = GuestConfigurationError('ssh failed')
        with self.assertRaises(GuestConfigurationError):
            self.app().run_clone('web2')
        self.guest.reboot.assert_not_called()


class TestDnsCollaborators(WorkflowTestCase):
    def bare_app(self, **config):
        return Application(
            _config(**config), Mock(),
            hypervisor=self.hypervisor, neighbors=self.neighbors, guest=self.guest,
            resolver=self.resolver, sleep=self.sleep,
        )

    @patch('vmdns.application.CloudflareClient')
    def test_clone_without_dns_builds_no_client(self, client_class):
        self.hypervisor.domain_exists.return_value = True

        self.bare_app(cf_api_token='', cf_domain='').run_clone('web2')

        client_class.assert_not_called()
        self.guest.set_hostname.assert_called_once_with('10.0.0.5', 'web2')

    def test_client_built_from_config(self):
        app = self.bare_app(cf_auth_mode='global_key', cf_api_email='ops@example.com')

        self.assertIs(app.client, app.client)
        self.assertEqual('tok', app.client.headers['X-Auth-Key'])
        self.assertEqual('ops@example.com', app.client.headers['X-Auth-Email'])
        self.assertNotIn('Authorization', app.client.headers)
