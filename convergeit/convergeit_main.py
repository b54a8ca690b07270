#!/usr/bin/env python
# The MIT License (MIT)
# 
# Copyright (C) 2014 OpenBet Limited
# 
# Permission is hereby granted, free of charge, to any person obtaining a copy of
# this software and associated documentation files (the "Software"), to deal in
# the Software without restriction, including without limitation the rights to
# use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies
# of the Software, and to permit persons to whom the Software is furnished to do
# so, subject to the following conditions:
# 
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# 
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# ITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""ConvergeIt command line: compile a catalog module and converge a target
onto it.
"""

import argparse
import logging
import sys
from convergeit import convergeit_config
from convergeit import convergeit_util
from convergeit import convergeit_version
from convergeit.convergeit_catalog import to_bool, compile_catalog
from convergeit.convergeit_engine import converge
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_resource import ConvergeItException, CycleDetectedError, DanglingEdgeError, DuplicateResourceError, UnmappedFactError
from convergeit.convergeit_target import ShellTarget, SimulatedTarget


# Errors found before anything is applied.
STRUCTURAL_ERRORS = (DuplicateResourceError, DanglingEdgeError, CycleDetectedError, UnmappedFactError)

EXIT_OK         = 0
EXIT_FAILED     = 1
EXIT_STRUCTURAL = 2


def parse_args(argv=None):
	"""Responsible for parsing arguments.
	"""
	# These are in order of their creation
	actions = ['apply', 'compile', 'depgraph', 'list_configs', 'version']

	parser = argparse.ArgumentParser(description='ConvergeIt - converge a host onto a declared catalog of resources.\n\nTo view help for a specific subcommand, type convergeit <subcommand> -h', prog='convergeit')
	subparsers = parser.add_subparsers(dest='action', help='''Action to perform - apply=converge the target, compile=show the compiled catalog, depgraph=show the catalog graph ready for graphviz, list_configs=show configuration as read in.''')
	subparsers.required = True

	sub_parsers = dict()
	for action in actions:
		sub_parsers[action] = subparsers.add_parser(action)

	for action in ['apply', 'compile', 'depgraph']:
		sub_parsers[action].add_argument('module', help='Catalog module file: a .py file with a module() function')
		sub_parsers[action].add_argument('-f', '--fact', '--facts', help='Override a fact, e.g. "-f os_family=RedHat". Can be specified multiple times.', default=[], action='append', dest='facts')
		sub_parsers[action].add_argument('-t', '--target', help='Target type; overrides [target] type', default=None, choices=('simulated', 'shell'))

	sub_parsers['apply'].add_argument('--noop', help='Report what would change without changing anything', const=True, default=None, action='store_const')
	sub_parsers['list_configs'].add_argument('--history', help='Show config with history', const=True, default=False, action='store_const')

	for action in ['apply', 'compile', 'depgraph', 'list_configs']:
		sub_parsers[action].add_argument('-o', '--logfile', default='', help='Log output to this file')
		sub_parsers[action].add_argument('-l', '--log', default='WARNING', help='Log level (DEBUG, INFO, WARNING (default), ERROR, CRITICAL)', choices=('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL', 'debug', 'info', 'warning', 'error', 'critical'))
		sub_parsers[action].add_argument('--config', help='Config file. Must be with perms 0600. Multiple arguments allowed; config files considered in order.', default=[], action='append')
		sub_parsers[action].add_argument('-s', '--set', help='Override a config item, e.g. "-s module manage_config yes". Can be specified multiple times.', default=[], action='append', nargs=3, metavar=('SEC', 'KEY', 'VAL'))

	return parser.parse_args(argv)


def make_target(cp, target_type=None):
	"""Returns the target configured in [target].
	"""
	target_type = target_type or cp.get('target', 'type')
	if target_type == 'simulated':
		return SimulatedTarget(os_family=cp.get('target', 'os_family'))
	elif target_type == 'shell':
		return ShellTarget(sudo=to_bool(cp.get('target', 'sudo')), timeout=int(cp.get('target', 'timeout')))
	raise ConvergeItException('Unknown target type: ' + target_type)


def run_action(args, cp):
	"""Compiles and, for apply, converges. Returns the exit code.
	"""
	module = convergeit_util.load_mod_from_file(args.module)
	target = make_target(cp, args.target)
	try:
		facts = target.get_facts().merged(convergeit_config.section_dict(cp, 'facts')).merged(convergeit_util.parse_facts(args.facts))
		catalog = compile_catalog(module, facts, params=convergeit_config.section_dict(cp, 'module'))
		if args.action == 'compile':
			convergeit_global_object.convergeit_print(catalog.render())
			return EXIT_OK
		if args.action == 'depgraph':
			convergeit_global_object.convergeit_print(catalog.graph.to_dot(name=catalog.name))
			return EXIT_OK
		noop = args.noop if args.noop is not None else to_bool(cp.get('run', 'noop'))
		report = converge(catalog, target, noop=noop, strict=False)
		convergeit_global_object.convergeit_print(report.render())
		if report.succeeded:
			convergeit_global_object.convergeit_print(convergeit_util.colorise(32, 'Converged: ' + catalog.name))
			return EXIT_OK
		for result in report.failures:
			convergeit_global_object.log(result.message, level=logging.ERROR)
		convergeit_global_object.convergeit_print(convergeit_util.colorise(31, 'Failed to converge: ' + catalog.name))
		if to_bool(cp.get('run', 'strict')):
			return EXIT_FAILED
		return EXIT_OK
	finally:
		target.close()


def main(argv=None):
	"""Main ConvergeIt function.

	Handles the configured actions:

		- apply        - converge the target onto the module's catalog
		- compile      - output the compiled catalog
		- depgraph     - output digraph of the catalog's resources
		- list_configs - output computed configuration
	"""
	args = parse_args(argv)
	if args.action == 'version':
		convergeit_global_object.convergeit_print('ConvergeIt version: ' + convergeit_version)
		return EXIT_OK
	convergeit_global_object.setup_logging(loglevel=args.log, logfile=args.logfile)
	convergeit_global_object.log('ConvergeIt run ' + convergeit_global_object.run_id + ' as ' + convergeit_global_object.username, level=logging.DEBUG)
	try:
		cp = convergeit_config.get_configs(configs=args.config, overrides=args.set)
		if args.action == 'list_configs':
			convergeit_global_object.convergeit_print(convergeit_config.print_config(cp, history=args.history))
			return EXIT_OK
		return run_action(args, cp)
	except STRUCTURAL_ERRORS as e:
		convergeit_global_object.log(str(e), level=logging.CRITICAL)
		return EXIT_STRUCTURAL
	except ConvergeItException as e:
		convergeit_global_object.log(str(e), level=logging.CRITICAL)
		return EXIT_FAILED
	except KeyboardInterrupt:
		convergeit_global_object.convergeit_print('Keyboard interrupt caught, exiting with status 1')
		return EXIT_FAILED


if __name__ == '__main__':
	sys.exit(main())
