"""Process-wide ConvergeIt state: logging, run identity and exit handling.
"""

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

import datetime
import getpass
import logging
import os
import socket
import sys
import time


class ConvergeItGlobal(object):
	"""Single object to store information that is global to all ConvergeIt
	runs in this process.
	"""

	only_one = None
	def __init__(self):
		"""Constructor.
		"""
		# Primitive singleton enforcer.
		assert ConvergeItGlobal.only_one is None
		ConvergeItGlobal.only_one = True

		# Logging.
		self.logger               = logging.getLogger('convergeit')
		self.loglevel             = logging.WARNING
		self.logfile              = ''
		self.log_handler          = None
		self.default_encoding     = 'utf-8'

		# Prompts and shell.
		# --noediting keeps readline from echoing our commands back at us.
		self.bash_startup_command = 'bash --noprofile --norc --noediting'
		self.pexpect_window_size  = (24, 65535)

		self.username             = os.environ.get('LOGNAME', '')
		if self.username == '':
			try:
				self.username = getpass.getuser()
			except (KeyError, OSError):
				self.username = 'unknown'

		# ConvergeIt run ID.
		self.run_id               = (socket.gethostname() + '_' + self.username + '_' + str(time.time()) + '.' + str(datetime.datetime.now().microsecond))

	def __str__(self):
		str_repr = '\n====== CONVERGEIT_GLOBAL_OBJECT BEGIN ====='
		str_repr += '\tself.username='  + str(self.username)
		str_repr += '\tself.run_id='    + str(self.run_id)
		str_repr += '\tself.loglevel='  + logging.getLevelName(self.loglevel)
		str_repr += '\tself.logfile='   + str(self.logfile)
		str_repr += '\n====== CONVERGEIT_GLOBAL_OBJECT DONE ====='
		return str_repr


	def setup_logging(self, loglevel='WARNING', logfile=''):
		"""Configures the convergeit logger. Safe to call more than once; the
		previous handler is replaced.

		@param loglevel: Level name, eg 'DEBUG', or a logging level number.
		@param logfile:  File to log to. Empty means stderr.
		"""
		if isinstance(loglevel, str):
			if loglevel.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
				self.handle_exit(exit_code=1, msg='Unknown log level: ' + loglevel)
			loglevel = getattr(logging, loglevel.upper())
		self.loglevel = loglevel
		self.logfile  = logfile
		if self.log_handler is not None:
			self.logger.removeHandler(self.log_handler)
			self.log_handler.close()
		if logfile:
			self.log_handler = logging.FileHandler(logfile)
		else:
			self.log_handler = logging.StreamHandler(sys.stderr)
		self.log_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s'))
		self.logger.addHandler(self.log_handler)
		self.logger.setLevel(loglevel)
		self.logger.propagate = False


	def log(self, msg, level=logging.INFO):
		"""Logs a message to the convergeit logger.
		"""
		self.logger.log(level, msg)


	def convergeit_print(self, msg):
		"""Handles simple printing of a msg at the global level.
		"""
		print(msg)


	def handle_exit(self, exit_code=0, msg=None):
		if not msg:
			msg = '\r\nExiting with error code: ' + str(exit_code)
			msg += '\r\nInvoking command was: ' + sys.executable
			for arg in sys.argv:
				msg += ' ' + arg
		if exit_code != 0:
			self.log(msg, level=logging.CRITICAL)
		sys.exit(exit_code)


convergeit_global_object = ConvergeItGlobal()
