#!/usr/bin/env python3

# Keeps locally installed certificates in sync with Yandex Cloud Certificate Manager
#
# To install on Debian:
# apt-get install python3-pip
# pip3 install certrenewer


import argparse
import collections
import datetime
import glob
import importlib.metadata
import json
import os
import signal
import sys
import threading
import time

import yaml

from .cloud_log import CloudLogSink
from .duration import format_duration, parse_duration
from .errors import (ConfigError, DurationError, ErrorCode, FatalError, MetadataError, RenewalError, RestartError,
                     WarningCode)
from .metadata import METADATA_URL, InstanceMetadata
from .orchestrator import RenewalOrchestrator
from .output import LOG_LEVELS, Output, indent
from .remote import CERTIFICATE_DATA_ENDPOINT, CERTIFICATE_MANAGER_ENDPOINT, CertificateManagerSource
from .services import DEFAULT_RESTART_COMMAND, CommandRestarter
from .types import CertificateJob


SCRIPT_NAME = 'certrenewer'

CERTIFICATE_FIELDS = collections.OrderedDict([
    ('name', 'name'),
    ('private_key', 'private_key_path'),
    ('chain', 'chain_path'),
    ('service', 'service_name'),
])


def certificate_jobs(certificates):
    if (not certificates):
        raise ConfigError('No certificates in config')
    if (not isinstance(certificates, list)):
        raise ConfigError('"certificates" must be a list')
    jobs = []
    for index, certificate in enumerate(certificates):
        if (not isinstance(certificate, dict)):
            raise ConfigError('Certificate ' + str(index) + ' must be a mapping')
        fields = {}
        for key, field in CERTIFICATE_FIELDS.items():
            value = certificate.get(key)
            if ((value is None) or (not str(value).strip())):
                raise ConfigError('"' + key + '" is not set for certificate ' + str(index))
            fields[field] = str(value)
        jobs.append(CertificateJob(**fields))
    names = [job.name for job in jobs]
    duplicates = sorted(set(name for name in names if (1 < names.count(name))))
    if (duplicates):
        raise ConfigError('Duplicate certificate names: ' + ', '.join(duplicates))
    return jobs


def version():
    try:
        return importlib.metadata.version(SCRIPT_NAME)
    except importlib.metadata.PackageNotFoundError:
        return 'unknown'


class RenewalManager:

    def __init__(self, argv=None):
        self.script_dir = os.path.dirname(os.path.realpath(sys.argv[0]))
        self.script_name = SCRIPT_NAME
        self.script_version = version()

        argparser = argparse.ArgumentParser(description='Certificate Renewal Manager')
        argparser.add_argument('--version', action='version', version='%(prog)s ' + self.script_version)
        argparser.add_argument('certificate_names', nargs='*')
        argparser.add_argument('-q', '--quiet',
                               action='store_true', dest='quiet', default=False,
                               help="Don't print status messages to stdout or warnings to stderr")
        argparser.add_argument('-v', '--verbose',
                               action='store_true', dest='verbose', default=False,
                               help='Print more detailed status messages to stdout')
        argparser.add_argument('-d', '--debug',
                               action='store_true', dest='debug', default=False,
                               help='Print detailed debugging information to stdout')
        argparser.add_argument('-D', '--detail',
                               action='store_true', dest='detail', default=False,
                               help='Print more detailed debugging information to stdout')
        argparser.add_argument('--color',
                               action='store_true', dest='color', default=False,
                               help='Colorize output')
        argparser.add_argument('--no-color',
                               action='store_true', dest='no_color', default=False,
                               help='Suppress colorized output')
        argparser.add_argument('-c', '--config',
                               dest='config_path', default=self.script_name, metavar='CONFIG_PATH',
                               help='Specify file path for config')
        argparser.add_argument('-1', '--once',
                               action='store_true', dest='once', default=False,
                               help='Run a single renewal pass and exit')
        argparser.add_argument('--show-config',
                               action='store_true', dest='show_config', default=False,
                               help='Display configuration settings')
        self.args = argparser.parse_args(argv)

        self.output = Output(quiet=self.args.quiet, verbose=self.args.verbose, debug=self.args.debug, detail=self.args.detail,
                             color=self.args.color, no_color=self.args.no_color)
        self.stop_event = threading.Event()
        self.metadata = None
        self.orchestrator = None
        self.jobs = []
        self._folder_id = None

        self.config, self.config_file_path = self._load_config(self.args.config_path, ('.', os.path.join('/etc', self.script_name), self.script_dir))
        self._config_defaults = {
            'settings': {
                'renewal_period': None,
                'heartbeat_period': None,
                'folder_id': None,
                'log_level': 'normal',
                'color_output': True,
                'max_workers': 4,
                'request_timeout': '30s',
                'restart_command': DEFAULT_RESTART_COMMAND,
                'restart_timeout': '5m',
                'log_group': None,
                'file_user': None,
                'file_group': None,
                'log_user': None,
                'log_group_owner': None,
                'warning_exit_code': False,
                'metadata_url': METADATA_URL,
                'certificate_manager_url': CERTIFICATE_MANAGER_ENDPOINT,
                'certificate_data_url': CERTIFICATE_DATA_ENDPOINT,
            },
            'directories': {
                'pid': '/var/run',
                'log': os.path.join('/var/log', self.script_name),
            },
            'services': {},
            'certificates': [],
        }

    @property
    def exit_code(self) -> int:
        return self.output.exit_code(self._setting('warning_exit_code'))

    def _load_yaml(self, stream, object_pairs_hook=dict):
        class OrderedLoader(yaml.SafeLoader):
            pass

        def construct_mapping(loader, node):
            loader.flatten_mapping(node)
            return object_pairs_hook(loader.construct_pairs(node))

        OrderedLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, construct_mapping)
        return yaml.load(stream, OrderedLoader)

    def _load_config_file(self, config_file_path):
        _, extension = os.path.splitext(config_file_path)
        try:
            self.output.detail('Reading config from ', config_file_path, '\n')
            with open(config_file_path) as config_file:
                if ('.json' == extension):
                    config = json.load(config_file, object_pairs_hook=collections.OrderedDict)
                else:
                    config = self._load_yaml(config_file, object_pairs_hook=collections.OrderedDict)
        except (OSError, ValueError, yaml.YAMLError) as error:
            self.output.fatal('Error reading config file ', config_file_path, ': ', error, '\n', code=ErrorCode.CONFIG)
        if (not isinstance(config, dict)):
            self.output.fatal('Config file ', config_file_path, ' does not contain a mapping\n', code=ErrorCode.CONFIG)
        return config

    def _find_configs(self, config_file_path):
        config_dir = os.path.dirname(config_file_path)
        file_paths = []
        for extension in ('.json', '.yaml', '.yml'):
            file_paths += glob.glob(os.path.join(config_dir, 'conf.d', '*' + extension))
        return file_paths

    def _merge_dicts(self, base, extra):
        if (not isinstance(base, dict)):
            base = collections.OrderedDict()
        for key, value in extra.items():
            if (isinstance(value, dict)):
                base[key] = self._merge_dicts(base.get(key), value)
            else:
                base[key] = value
        return base

    def _load_config(self, file_path, search_paths=[]):
        file_path = os.path.expanduser(file_path)
        search_paths = [''] if (os.path.isabs(file_path)) else search_paths
        file_path, file_extension = os.path.splitext(file_path)
        extensions = ('.json', '.yaml', '.yml') if not file_extension else [file_extension]
        for search_path in search_paths:
            for extension in extensions:
                config_file_path = os.path.join(search_path, file_path) + extension
                if (os.path.isfile(config_file_path)):
                    config = self._load_config_file(config_file_path)
                    for file_path in sorted(self._find_configs(config_file_path)):
                        config = self._merge_dicts(config, self._load_config_file(file_path))
                    return (config, config_file_path)
        self.output.fatal('Config file ', file_path, file_extension, ' not found\n', code=ErrorCode.CONFIG)

    def _config(self, section_name, key=None, default=None):
        return self.config.get(section_name, {}).get(key, default) if (key) else self.config.get(section_name, {})

    def _setting(self, key):
        return self._config('settings', key)

    def _setting_duration(self, key):
        try:
            return parse_duration(self._setting(key))
        except DurationError as error:
            self.output.fatal('Invalid ', key, ' setting: ', error, '\n', code=ErrorCode.CONFIG)

    def _directory(self, file_type):
        directory = self._config('directories', file_type, '')
        return os.path.normpath(os.path.join(os.path.dirname(self.config_file_path), directory)) if (directory) else directory

    def _validate_config(self):
        for section_name, default_section in self._config_defaults.items():
            if (self.config.get(section_name) is None):
                self.config[section_name] = default_section
            elif (isinstance(default_section, dict)):
                for key, value in default_section.items():
                    if (key not in self.config[section_name]):
                        self.config[section_name][key] = value

        if (self._setting('log_level') not in LOG_LEVELS):
            self.output.fatal('Invalid log_level "', self._setting('log_level'), '", expected one of ', ', '.join(LOG_LEVELS), '\n',
                              code=ErrorCode.CONFIG)
        self.output.log_level = self._setting('log_level')
        self.output.color_output = self._setting('color_output')
        self.output.log_user = self._setting('log_user')
        self.output.log_group = self._setting('log_group_owner')
        if (self._directory('log')):
            self.output.log_file_path = os.path.join(self._directory('log'), self.script_name + '.log')

        if (self._setting('renewal_period') is None):
            self.output.fatal('Renewal period is not set\n', code=ErrorCode.CONFIG)
        self.renewal_period = self._setting_duration('renewal_period')
        if (datetime.timedelta() >= self.renewal_period):
            self.output.fatal('Renewal period must be positive\n', code=ErrorCode.CONFIG)
        if (self._setting('heartbeat_period') is None):
            self.heartbeat_period = self.renewal_period / 10
            self.output.info('Heartbeat period is not set, using 1/10 of renewal period\n')
        else:
            self.heartbeat_period = self._setting_duration('heartbeat_period')
        if (datetime.timedelta() >= self.heartbeat_period):
            self.output.fatal('Heartbeat period must be positive\n', code=ErrorCode.CONFIG)
        self.request_timeout = self._setting_duration('request_timeout').total_seconds() or None
        self.restart_timeout = self._setting_duration('restart_timeout').total_seconds() or None

        try:
            self.max_workers = int(self._setting('max_workers'))
        except (TypeError, ValueError):
            self.max_workers = 0
        if (self.max_workers < 1):
            self.output.fatal('max_workers must be a positive integer\n', code=ErrorCode.CONFIG)

        if (not isinstance(self._config('services'), dict)):
            self.output.fatal('"services" must map service names to restart commands\n', code=ErrorCode.CONFIG)
        if (self._setting('restart_command')):
            try:
                CommandRestarter(default_command=str(self._setting('restart_command'))).command('service')
            except RestartError as error:
                self.output.fatal(error, '\n', code=ErrorCode.CONFIG)

        try:
            self.jobs = certificate_jobs(self._config('certificates'))
        except ConfigError as error:
            self.output.fatal(error, '\n', code=ErrorCode.CONFIG)
        if (self.args.certificate_names):
            for certificate_name in self.args.certificate_names:
                if (certificate_name not in [job.name for job in self.jobs]):
                    self.output.warn('Certificate ', certificate_name, ' is not configured\n', code=WarningCode.CONFIG)
            self.jobs = [job for job in self.jobs if (job.name in self.args.certificate_names)]

    def _token(self):
        return self.metadata.token()

    def folder_id(self):
        if (self._setting('folder_id')):
            return self._setting('folder_id')
        if (not self._folder_id):
            self.output.debug('Getting instance identity\n')
            identity = self.metadata.identity()
            self.output.detail('Running on ', identity.name or identity.instance_id, ' in folder ', identity.folder_id, '\n')
            self._folder_id = identity.folder_id
        return self._folder_id

    def connect(self):
        self.metadata = InstanceMetadata(self._setting('metadata_url'), timeout=self.request_timeout)
        source = CertificateManagerSource(self._token, endpoint=self._setting('certificate_manager_url'),
                                          data_endpoint=self._setting('certificate_data_url'), timeout=self.request_timeout)
        restarter = CommandRestarter(self._config('services'), self._setting('restart_command'), timeout=self.restart_timeout)
        self.orchestrator = RenewalOrchestrator(source, restarter, self.output, None, max_workers=self.max_workers,
                                                file_user=self._setting('file_user'), file_group=self._setting('file_group'))
        if (self._setting('log_group')):
            try:
                sink = CloudLogSink(self._token, self.folder_id(), self._setting('log_group'), timeout=self.request_timeout)
                sink.resolve()
                self.output.sink = sink
            except RenewalError as error:
                self.output.warn('Unable to connect to cloud log group ', self._setting('log_group'), '\n', indent(error), '\n',
                                 code=WarningCode.LOG)

    def renew_certificates(self):
        try:
            self.orchestrator.folder_id = self.folder_id()
        except MetadataError as error:
            self.output.error('Unable to get instance metadata\n', indent(error), '\n', code=ErrorCode.METADATA)
            return None
        self.output.debug('Renewing ', len(self.jobs), ' certificates in folder ', self.orchestrator.folder_id, '\n')
        aggregate = self.orchestrator.renew(self.jobs, cancel=self.stop_event)
        self.output.info('Done!\n')
        return aggregate

    def serve(self, clock=time.monotonic):
        self.output.status('Renewing every ', format_duration(self.renewal_period),
                           ', heartbeat every ', format_duration(self.heartbeat_period), '\n')
        next_renewal = clock()
        while (not self.stop_event.is_set()):
            if (next_renewal <= clock()):
                self.renew_certificates()
                next_renewal = clock() + self.renewal_period.total_seconds()
            else:
                self.output.info('Heartbeat ok\n')
            self.stop_event.wait(max(min(self.heartbeat_period.total_seconds(), next_renewal - clock()), 0))
        self.output.status('Stopping\n')

    def stop(self, signum=None, frame=None):
        self.stop_event.set()

    def show_config(self):
        self.output.info('Configuration:\n')
        self.output.status(json.dumps(self.config, indent=4, default=str), '\n')

    def _process_running(self, pid_file_path):
        try:
            with open(pid_file_path) as pid_file:
                return (-1 < os.getsid(int(pid_file.read())))
        except (OSError, ValueError):
            pass
        return False

    def run(self):
        self._validate_config()
        self.output.log('INFO', '\n', self.script_name, ' executed at ', str(datetime.datetime.now()), '\n')
        if (self.args.show_config):
            self.show_config()
            return
        pid_file_path = os.path.join(self._directory('pid'), self.script_name + '.pid')
        if (self._process_running(pid_file_path)):
            self.output.fatal('Renewer already running\n')
        try:
            with open(pid_file_path, 'w') as pid_file:
                pid_file.write(str(os.getpid()))
        except OSError as error:
            self.output.fatal('Unable to write pid file ', pid_file_path, '\n', indent(error), '\n', code=ErrorCode.PERMISSION)
        try:
            self.connect()
            if (self.args.once):
                self.renew_certificates()
            else:
                signal.signal(signal.SIGTERM, self.stop)
                signal.signal(signal.SIGINT, self.stop)
                self.serve()
        finally:
            os.remove(pid_file_path)


def main(argv=None) -> int:
    exit_code = ErrorCode.EXCEPTION
    manager = None
    try:
        manager = RenewalManager(argv)
        manager.run()
    except FatalError:
        pass
    if (manager):
        exit_code = manager.exit_code
    return exit_code
