#
# Parsers against captured virsh / qemu-ga / iproute2 output
#

from unittest import TestCase

from vmdns.models import DomainState
from vmdns.parsers import (
    extract_mac_address,
    find_neighbor_ipv4,
    first_usable_ipv4,
    interface_ipv4_addresses,
    is_usable_ipv4,
    parse_agent_interfaces,
    parse_domain_state,
    parse_domifaddr,
    parse_neighbor_table,
)

DOMIFADDR_AGENT = """\
 Name       MAC address          Protocol     Address
-------------------------------------------------------------------------------
 lo         00:00:00:00:00:00    ipv4         127.0.0.1/8
 -          -                    ipv6         ::1/128
 enp1s0     52:54:00:4B:2C:1A    ipv4         192.168.122.45/24
 -          -                    ipv6         fe80::5054:ff:fe4b:2c1a/64
"""

DOMIFADDR_LEASE = """\
 Name       MAC address          Protocol     Address
-------------------------------------------------------------------------------
 vnet3      52:54:00:4b:2c:1a    ipv4         192.168.122.45/24
"""

DOMAIN_XML = """\
<domain type='kvm'>
  <name>web1</name>
  <devices>
    <disk type='file' device='disk'/>
    <interface type='network'>
      <mac address='52:54:00:4B:2C:1A'/>
      <source network='default'/>
      <model type='virtio'/>
    </interface>
    <interface type='network'>
      <mac address='52:54:00:00:00:02'/>
    </interface>
  </devices>
</domain>
"""

IP_NEIGH = """\
192.168.1.1 dev eno1 lladdr a4:91:b1:00:11:22 REACHABLE
192.168.122.9 dev virbr0  FAILED
192.168.122.45 dev virbr0 lladdr 52:54:00:4b:2c:1a STALE
fe80::5054:ff:fe4b:2c1a dev virbr0 lladdr 52:54:00:4b:2c:1a STALE
"""

AGENT_INTERFACES = {
    "return": [
        {
            "name": "lo",
            "hardware-address": "00:00:00:00:00:00",
            "ip-addresses": [
                {"ip-address-type": "ipv4", "ip-address": "127.0.0.1", "prefix": 8},
            ],
        },
        {
            "name": "enp1s0",
            "hardware-address": "52:54:00:4b:2c:1a",
            "ip-addresses": [
                {"ip-address-type": "ipv6", "ip-address": "fe80::5054:ff:fe4b:2c1a", "prefix": 64},
                {"ip-address-type": "ipv4", "ip-address": "192.168.122.45", "prefix": 24},
            ],
        },
    ]
}


class TestAddressHelpers(TestCase):
    def test_is_usable_ipv4(self):
        self.assertTrue(is_usable_ipv4('10.0.0.5'))
        self.assertFalse(is_usable_ipv4('127.0.0.1'))
        self.assertFalse(is_usable_ipv4('127.0.0.53'))
        self.assertFalse(is_usable_ipv4('127.255.0.1'))
        self.assertFalse(is_usable_ipv4('999.1.1.1'))
        self.assertFalse(is_usable_ipv4(''))
        self.assertFalse(is_usable_ipv4(None))
        self.assertFalse(is_usable_ipv4('::1'))

    def test_first_usable_skips_loopback(self):
        self.assertEqual(
            '192.168.122.45',
            first_usable_ipv4(['127.0.0.1', '192.168.122.45', '10.0.0.1']),
        )
        self.assertIsNone(first_usable_ipv4(['127.0.0.1']))
        self.assertIsNone(first_usable_ipv4([]))


class TestDomifaddr(TestCase):
    def test_agent_output_groups_continuation_rows(self):
        interfaces = parse_domifaddr(DOMIFADDR_AGENT)
        self.assertEqual(['lo', 'enp1s0'], [i.name for i in interfaces])
        self.assertEqual(
            [('ipv4', '127.0.0.1'), ('ipv6', '::1')], interfaces[0].addresses
        )
        self.assertEqual('52:54:00:4b:2c:1a', interfaces[1].mac)
        self.assertEqual(
            [('ipv4', '192.168.122.45'), ('ipv6', 'fe80::5054:ff:fe4b:2c1a')],
            interfaces[1].addresses,
        )

    def test_ipv4_flattening(self):
        interfaces = parse_domifaddr(DOMIFADDR_AGENT)
        self.assertEqual(
            ['127.0.0.1', '192.168.122.45'], interface_ipv4_addresses(interfaces)
        )
        self.assertEqual(
            ['192.168.122.45'],
            interface_ipv4_addresses(interfaces, skip_names=('lo',)),
        )

    def test_lease_output(self):
        interfaces = parse_domifaddr(DOMIFADDR_LEASE)
        self.assertEqual(1, len(interfaces))
        self.assertEqual('vnet3', interfaces[0].name)
        self.assertEqual([('ipv4', '192.168.122.45')], interfaces[0].addresses)

    def test_header_only_and_empty(self):
        header = DOMIFADDR_LEASE.splitlines()[:2]
        self.assertEqual([], parse_domifaddr('\n'.join(header)))
        self.assertEqual([], parse_domifaddr(''))
        self.assertEqual([], parse_domifaddr(None))


class TestDomainState(TestCase):
    def test_states(self):
        self.assertEqual(DomainState.RUNNING, parse_domain_state('running\n\n'))
        self.assertEqual(DomainState.STOPPED, parse_domain_state('shut off\n'))
        self.assertEqual(DomainState.UNKNOWN, parse_domain_state('paused'))
        self.assertEqual(DomainState.UNKNOWN, parse_domain_state(''))


class TestMacExtraction(TestCase):
    def test_first_interface_mac_lowercased(self):
        self.assertEqual('52:54:00:4b:2c:1a', extract_mac_address(DOMAIN_XML))

    def test_no_interface(self):
        self.assertIsNone(extract_mac_address('<domain><devices/></domain>'))
        self.assertIsNone(extract_mac_address(''))

    def test_unparseable_xml_falls_back_to_pattern(self):
        self.assertEqual(
            '52:54:00:aa:bb:cc',
            extract_mac_address("garbage <mac address='52:54:00:AA:BB:CC'/"),
        )


class TestAgentInterfaces(TestCase):
    def test_hyphenated_keys(self):
        interfaces = parse_agent_interfaces(AGENT_INTERFACES)
        self.assertEqual(['lo', 'enp1s0'], [i.name for i in interfaces])
        self.assertEqual(
            ['192.168.122.45'],
            interface_ipv4_addresses(interfaces, skip_names=('lo',)),
        )

    def test_underscored_keys(self):
        payload = {
            'return': [
                {
                    'name': 'eth0',
                    'ip_addresses': [
                        {'ip_address_type': 'ipv4', 'ip_address': '10.0.0.7'}
                    ],
                }
            ]
        }
        interfaces = parse_agent_interfaces(payload)
        self.assertEqual([('ipv4', '10.0.0.7')], interfaces[0].addresses)

    def test_missing_return(self):
        self.assertEqual([], parse_agent_interfaces({}))
        self.assertEqual([], parse_agent_interfaces(None))


class TestNeighborTable(TestCase):
    def test_parse(self):
        entries = parse_neighbor_table(IP_NEIGH)
        self.assertEqual(4, len(entries))
        self.assertEqual(('192.168.122.9', None, 'FAILED'), entries[1])
        self.assertEqual(
            ('192.168.122.45', '52:54:00:4b:2c:1a', 'STALE'), entries[2]
        )

    def test_find_by_mac_case_insensitive(self):
        self.assertEqual(
            '192.168.122.45', find_neighbor_ipv4(IP_NEIGH, '52:54:00:4B:2C:1A')
        )

    def test_unknown_mac(self):
        self.assertIsNone(find_neighbor_ipv4(IP_NEIGH, '52:54:00:ff:ff:ff'))
        self.assertIsNone(find_neighbor_ipv4('', '52:54:00:4b:2c:1a'))
