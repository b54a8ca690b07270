import unittest
from convergeit import package_map
from convergeit.convergeit_catalog import Catalog, CatalogFragment, CatalogModule, FactSet, compile_catalog, compose, select, to_bool
from convergeit.convergeit_graph import BEFORE, NOTIFY
from convergeit.convergeit_resource import ConvergeItException, CycleDetectedError, DuplicateResourceError, File, Identity, Package, Service, UnmappedFactError


class webserver(CatalogModule):

	def declare(self, facts, params):
		fragment = CatalogFragment('webserver')
		name = select(facts, 'os_family', {package_map.DEBIAN: 'apache2', package_map.REDHAT: 'httpd'})
		package = fragment.add(Package('apache2', name=name))
		if params['manage_service']:
			service = fragment.add(Service(name, enable=True))
			fragment.before(package, service)
		return fragment


def webserver_module():
	return webserver('test.webserver', parameters={'manage_service': True, 'workers': 4})


class TestFacts(unittest.TestCase):

	def test_factset_is_read_only_mapping(self):
		facts = FactSet({'os_family': 'Debian'})
		self.assertEqual(facts['os_family'], 'Debian')
		with self.assertRaises(TypeError):
			facts['os_family'] = 'RedHat'

	def test_merged(self):
		facts = FactSet(os_family='Debian', operatingsystem='ubuntu')
		merged = facts.merged({'os_family': 'RedHat'})
		self.assertEqual(merged['os_family'], 'RedHat')
		self.assertEqual(merged['operatingsystem'], 'ubuntu')
		self.assertEqual(facts['os_family'], 'Debian')

	def test_select(self):
		mapping = {'Debian': 'slapd', 'RedHat': 'openldap-servers'}
		self.assertEqual(select({'os_family': 'Debian'}, 'os_family', mapping), 'slapd')
		self.assertEqual(select({'os_family': 'RedHat'}, 'os_family', mapping), 'openldap-servers')

	def test_select_has_no_default(self):
		with self.assertRaises(UnmappedFactError) as context:
			select({'os_family': 'Solaris'}, 'os_family', {'Debian': 'slapd'})
		self.assertEqual(context.exception.fact, 'os_family')
		self.assertEqual(context.exception.value, 'Solaris')
		self.assertRaises(UnmappedFactError, select, {}, 'os_family', {'Debian': 'slapd'})


class TestPackageMap(unittest.TestCase):

	def test_openldap_servers(self):
		self.assertEqual(package_map.map_package('openldap-servers', {'os_family': 'Debian'}), 'slapd')
		self.assertEqual(package_map.map_package('openldap-servers', {'os_family': 'RedHat'}), 'openldap-servers')
		self.assertRaises(UnmappedFactError, package_map.map_package, 'openldap-servers', {'os_family': 'Solaris'})

	def test_unknown_package(self):
		self.assertRaises(UnmappedFactError, package_map.map_package, 'no-such-package', {'os_family': 'Debian'})

	def test_only_openldap_packages(self):
		self.assertEqual(sorted(package_map.PACKAGE_MAP), ['openldap-clients', 'openldap-servers'])
		self.assertRaises(UnmappedFactError, package_map.map_package, 'apache2', {'os_family': 'Debian'})

	def test_map_packages(self):
		self.assertEqual(package_map.map_packages('openldap-servers openldap-clients', {'os_family': 'Debian'}), 'slapd ldap-utils')

	def test_os_family_for(self):
		self.assertEqual(package_map.os_family_for('ubuntu'), package_map.DEBIAN)
		self.assertEqual(package_map.os_family_for('rocky', 'rhel centos fedora'), package_map.REDHAT)
		self.assertEqual(package_map.os_family_for('pop', '"ubuntu debian"'), package_map.DEBIAN)
		self.assertRaises(UnmappedFactError, package_map.os_family_for, 'solaris')

	def test_install_type_for(self):
		self.assertEqual(package_map.install_type_for('Debian'), 'apt')
		self.assertEqual(package_map.install_type_for('RedHat'), 'yum')


class TestCompose(unittest.TestCase):

	def fragment(self, name, *resources):
		fragment = CatalogFragment(name)
		fragment.add(*resources)
		return fragment

	def test_links(self):
		merged = compose('all', [self.fragment('install', Package('slapd')),
		                         self.fragment('config', File('/etc/default/slapd', content='')),
		                         self.fragment('service', Service('slapd'))], links=[BEFORE, NOTIFY])
		self.assertEqual([(str(edge.source), str(edge.target), edge.kind) for edge in merged.edges],
		                 [('Package[slapd]', 'File[/etc/default/slapd]', BEFORE),
		                  ('File[/etc/default/slapd]', 'Service[slapd]', NOTIFY)])

	def test_empty_fragment_links_before(self):
		merged = compose('all', [self.fragment('install', Package('slapd')), CatalogFragment('config'), self.fragment('service', Service('slapd'))], links=[BEFORE, NOTIFY])
		self.assertEqual(len(merged.edges), 1)
		self.assertEqual(merged.edges[0].kind, BEFORE)

	def test_empty_fragment_links_notify(self):
		merged = compose('all', [self.fragment('install', Package('slapd')), CatalogFragment('config'), self.fragment('service', Service('slapd'))], links=[NOTIFY, NOTIFY])
		self.assertEqual(merged.edges[0].kind, NOTIFY)

	def test_default_links(self):
		merged = compose('all', [self.fragment('a', Package('a')), self.fragment('b', Package('b'), Package('c'))])
		self.assertEqual(len(merged.edges), 2)
		self.assertTrue(all(edge.kind == BEFORE for edge in merged.edges))

	def test_wrong_number_of_links(self):
		self.assertRaises(ConvergeItException, compose, 'all', [CatalogFragment('a'), CatalogFragment('b')], links=[])


class TestCatalogModule(unittest.TestCase):

	def test_get_config_defaults(self):
		self.assertEqual(webserver_module().get_config(), {'manage_service': True, 'workers': 4})

	def test_get_config_reads_strings(self):
		params = webserver_module().get_config({'manage_service': 'no', 'workers': '8'})
		self.assertEqual(params, {'manage_service': False, 'workers': 8})

	def test_get_config_unknown(self):
		self.assertRaises(ConvergeItException, webserver_module().get_config, {'mange_service': 'no'})

	def test_to_bool(self):
		self.assertTrue(to_bool('Yes'))
		self.assertFalse(to_bool('0'))
		self.assertRaises(ConvergeItException, to_bool, 'maybe')

	def test_module_id_must_be_string(self):
		self.assertRaises(ConvergeItException, webserver, 42)


class TestCompileCatalog(unittest.TestCase):

	def test_compile_for_redhat(self):
		catalog = compile_catalog(webserver_module(), {'os_family': 'RedHat'})
		self.assertIsInstance(catalog, Catalog)
		self.assertEqual(catalog.resource('Package[apache2]').attributes['name'], 'httpd')
		self.assertIn('Service[httpd]', catalog)
		self.assertEqual(len(catalog), 2)
		self.assertEqual(len(catalog.edges), 1)

	def test_compile_with_params(self):
		catalog = compile_catalog(webserver_module(), {'os_family': 'Debian'}, params={'manage_service': 'false'})
		self.assertEqual([str(resource.identity) for resource in catalog.resources], ['Package[apache2]'])

	def test_compile_is_deterministic(self):
		first = compile_catalog(webserver_module(), {'os_family': 'Debian'})
		second = compile_catalog(webserver_module(), {'os_family': 'Debian'})
		self.assertEqual([r.identity for r in first.resources], [r.identity for r in second.resources])
		self.assertEqual(first.edges, second.edges)

	def test_unmapped_fact(self):
		self.assertRaises(UnmappedFactError, compile_catalog, webserver_module(), {'os_family': 'Gentoo'})

	def test_fragments_across_modules_collide(self):
		extra = CatalogFragment('extra')
		extra.add(Package('apache2'))
		self.assertRaises(DuplicateResourceError, compile_catalog, [webserver_module(), extra], {'os_family': 'Debian'})

	def test_cycle_found_at_compile_time(self):
		fragment = CatalogFragment('loop')
		fragment.add(Package('a'), Package('b'))
		fragment.before('Package[a]', 'Package[b]')
		fragment.require('Package[a]', 'Package[b]')
		self.assertRaises(CycleDetectedError, compile_catalog, fragment, {})

	def test_long_before_chain(self):
		fragment = CatalogFragment('chain')
		previous = None
		for i in range(1500):
			package = fragment.add(Package('p' + str(i)))
			if previous is not None:
				fragment.before(previous, package)
			previous = package
		catalog = compile_catalog(fragment, {})
		self.assertEqual(len(catalog), 1500)
		self.assertTrue(catalog.graph.reachable('Package[p0]', 'Package[p1499]'))

	def test_resource_lookup(self):
		catalog = compile_catalog(webserver_module(), {'os_family': 'Debian'})
		self.assertEqual(catalog.resource(('service', 'apache2')).identity, Identity('service', 'apache2'))
		self.assertRaises(KeyError, catalog.resource, 'Service[httpd]')

	def test_render(self):
		rendered = compile_catalog(webserver_module(), {'os_family': 'Debian'}).render()
		self.assertIn('Package[apache2]', rendered)
		self.assertIn('Service[apache2]', rendered)

	def test_nothing_to_compile(self):
		self.assertRaises(ConvergeItException, compile_catalog, [], {})


if __name__ == '__main__':
	unittest.main()
