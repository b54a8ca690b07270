from convergeit import package_map
from convergeit.convergeit_catalog import CatalogFragment, CatalogModule, compose, select
from convergeit.convergeit_graph import BEFORE, NOTIFY
from convergeit.convergeit_resource import File, Package, Service


DEFAULTS_FILE = {package_map.DEBIAN: '/etc/default/slapd',
                 package_map.REDHAT: '/etc/sysconfig/slapd'}

DEFAULTS_TEMPLATE = {package_map.DEBIAN: '''# Managed by convergeit: {{ module_id }}
SLAPD_CONF=
SLAPD_USER="openldap"
SLAPD_GROUP="openldap"
SLAPD_PIDFILE=
SLAPD_SERVICES="{{ listen_urls }}"
SLAPD_SENTINEL_FILE=/etc/ldap/noslapd
SLAPD_OPTIONS=""
''',
                     package_map.REDHAT: '''# Managed by convergeit: {{ module_id }}
SLAPD_URLS="{{ listen_urls }}"
SLAPD_OPTIONS=
'''}


class openldap(CatalogModule):
	"""OpenLDAP server: the package, optionally its defaults file, and the
	slapd service.
	"""

	def install(self, facts, params):
		fragment = CatalogFragment('openldap::install')
		fragment.add(Package('openldap-servers',
		                     name=package_map.map_package('openldap-servers', facts),
		                     ensure=params['package_ensure']))
		return fragment

	def config(self, facts, params):
		fragment = CatalogFragment('openldap::config')
		if not params['manage_config']:
			return fragment
		fragment.add(File(select(facts, 'os_family', DEFAULTS_FILE),
		                  template=select(facts, 'os_family', DEFAULTS_TEMPLATE),
		                  context={'module_id': self.module_id, 'listen_urls': params['listen_urls']},
		                  mode='0644'))
		return fragment

	def service(self, facts, params):
		fragment = CatalogFragment('openldap::service')
		fragment.add(Service('slapd',
		                     ensure=params['service_ensure'],
		                     enable=params['service_enable']))
		return fragment

	def declare(self, facts, params):
		# Changes to the defaults file restart slapd.
		return compose('openldap',
		               [self.install(facts, params), self.config(facts, params), self.service(facts, params)],
		               links=[BEFORE, NOTIFY])


def module():
	return openldap(
		'convergeit.tk.openldap.openldap',
		description='OpenLDAP server (slapd): package, defaults file and ' +
			'service.',
		parameters={'package_ensure': 'present',
		            'service_ensure': 'running',
		            'service_enable': True,
		            'manage_config':  False,
		            'listen_urls':    'ldap:///'}
	)
