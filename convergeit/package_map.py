"""Stores known package maps and OS family mappings for different
distributions.
"""

from convergeit.convergeit_catalog import select
from convergeit.convergeit_resource import UnmappedFactError


DEBIAN    = 'Debian'
REDHAT    = 'RedHat'
SUSE      = 'Suse'
ARCHLINUX = 'Archlinux'
GENTOO    = 'Gentoo'

# Structured by canonical package, then os family -> distribution package
# name. Families missing from an entry are not supported for that package.
PACKAGE_MAP = {
	'openldap-servers':      {DEBIAN: 'slapd',              REDHAT: 'openldap-servers',  SUSE: 'openldap2',         ARCHLINUX: 'openldap', GENTOO: 'net-nds/openldap'},
	'openldap-clients':      {DEBIAN: 'ldap-utils',         REDHAT: 'openldap-clients',  SUSE: 'openldap2-client',  ARCHLINUX: 'openldap', GENTOO: 'net-nds/openldap'},
}

# Map /etc/os-release ID (or ID_LIKE) values to OS families.
OS_FAMILY_MAP = {'ubuntu':        DEBIAN,
                 'debian':        DEBIAN,
                 'raspbian':      DEBIAN,
                 'linuxmint':     DEBIAN,
                 'rhel':          REDHAT,
                 'centos':        REDHAT,
                 'fedora':        REDHAT,
                 'rocky':         REDHAT,
                 'almalinux':     REDHAT,
                 'ol':            REDHAT,
                 'amzn':          REDHAT,
                 'sles':          SUSE,
                 'suse':          SUSE,
                 'opensuse':      SUSE,
                 'opensuse-leap': SUSE,
                 'arch':          ARCHLINUX,
                 'gentoo':        GENTOO}

# Package manager per OS family.
INSTALL_TYPE_MAP = {DEBIAN:    'apt',
                    REDHAT:    'yum',
                    SUSE:      'zypper',
                    ARCHLINUX: 'pacman',
                    GENTOO:    'emerge'}


def map_package(package, facts):
	"""Returns the distribution package name for a canonical package name.

	Raises UnmappedFactError if the package is unknown, or has no entry for
	the facts' os_family.
	"""
	if package not in PACKAGE_MAP:
		raise UnmappedFactError('package', package, known=sorted(PACKAGE_MAP))
	return select(facts, 'os_family', PACKAGE_MAP[package])


def map_packages(package_str, facts):
	return ' '.join([map_package(package, facts) for package in package_str.split()])


def os_family_for(distro_id, id_like=''):
	"""Returns the OS family for an os-release ID, falling back to the
	ID_LIKE entries in order.
	"""
	for candidate in [distro_id] + id_like.split():
		candidate = candidate.strip('"').lower()
		if candidate in OS_FAMILY_MAP:
			return OS_FAMILY_MAP[candidate]
	raise UnmappedFactError('operatingsystem', distro_id, known=sorted(OS_FAMILY_MAP))


def install_type_for(os_family):
	return select({'os_family': os_family}, 'os_family', INSTALL_TYPE_MAP)
