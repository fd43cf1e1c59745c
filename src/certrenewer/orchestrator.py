import concurrent.futures

from .errors import ErrorCode, ExpiryError, RenewalError, RestartError, WarningCode
from .expiry import EARLIEST, certificate_expiry
from .files import replace_with_backup
from .output import indent
from .remote import check_for_update
from .types import JobOutcome, JobResult, RenewalAggregate, service_groups


CHAIN_MODE = 0o644
PRIVATE_KEY_MODE = 0o600


def full_chain(chain_parts):
    return ''.join(chain_part + '\n' for chain_part in chain_parts)


class RenewalOrchestrator:
    """
    Brings a batch of certificate jobs up to date with the remote source.

    Jobs run concurrently and independently: any failure of one job is logged
    and recorded in its JobResult, never raised. Once every job has finished,
    each distinct service named by the batch is restarted exactly once.
    """

    def __init__(self, source, restarter, output, folder_id, *, max_workers=4, file_user=None, file_group=None,
                 inspect_expiry=certificate_expiry, replace=replace_with_backup):
        self.source = source
        self.restarter = restarter
        self.output = output
        self.folder_id = folder_id
        self.max_workers = max_workers
        self.file_user = file_user
        self.file_group = file_group
        self.inspect_expiry = inspect_expiry
        self.replace = replace

    def _due_date(self, job):
        try:
            return self.inspect_expiry(job.chain_path)
        except ExpiryError as error:
            self.output.warn('Unable to get expiry date of ', job.name, ', forcing update\n', indent(error), '\n',
                             code=WarningCode.CERTIFICATE)
            return EARLIEST

    def _install(self, job, content):
        self.replace(job.chain_path, full_chain(content.chain_parts), CHAIN_MODE, user=self.file_user, group=self.file_group)
        self.output.detail('Installed certificate chain ', job.chain_path, '\n')
        self.replace(job.private_key_path, content.private_key, PRIVATE_KEY_MODE, user=self.file_user, group=self.file_group)
        self.output.detail('Installed private key ', job.private_key_path, '\n')

    def renew_job(self, job, index=0, count=1, cancel=None):
        self.output.info('Updating ', job.name, ' (', index + 1, '/', count, ')\n')
        try:
            due_date = self._due_date(job)
            self.output.detail('Certificate ', job.name, ' expires ', due_date.isoformat(), '\n')
            content = check_for_update(self.source, self.folder_id, job.name, due_date, cancel=cancel)
            if (content is None):
                self.output.info('Certificate ', job.name, ' does not need to be updated\n')
                return JobResult(job, JobOutcome.UP_TO_DATE, None)
            self._install(job, content)
        except RenewalError as error:
            self.output.error('Unable to update certificate ', job.name, '\n', indent(error), '\n', code=ErrorCode.INSTALL)
            return JobResult(job, JobOutcome.FAILED, error)
        except Exception as error:
            self.output.error('Unexpected error updating certificate ', job.name, '\n', indent(repr(error)), '\n', code=ErrorCode.EXCEPTION)
            return JobResult(job, JobOutcome.FAILED, error)
        self.output.status('Installed certificate ', job.name, ' for ', job.service_name, '\n')
        return JobResult(job, JobOutcome.INSTALLED, None)

    def restart_service(self, service_name, cancel=None):
        self.output.debug('Restarting service ', service_name, '\n')
        try:
            response = self.restarter.restart(service_name, cancel=cancel)
        except RestartError as error:
            details = error.output if (error.output) else error
            self.output.warn('Service ', service_name, ' restart failed\n', indent(details), '\n', code=WarningCode.SERVICE)
            return False
        except Exception as error:
            self.output.error('Unexpected error restarting service ', service_name, '\n', indent(repr(error)), '\n', code=ErrorCode.EXCEPTION)
            return False
        if (response):
            self.output.warn('Service ', service_name, ' responded to restart with:\n', indent(response), '\n', code=WarningCode.SERVICE)
        self.output.info('Restarted service ', service_name, '\n')
        return True

    def renew(self, jobs, cancel=None):
        jobs = list(jobs)
        services = service_groups(jobs)
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.renew_job, job, index, len(jobs), cancel) for index, job in enumerate(jobs)]
            results = tuple(future.result() for future in futures)

        if (cancel is not None and cancel.is_set() and services):
            self.output.status('Stop requested, restarting services before exiting\n')
        success = 0
        for service_name, job_count in services.items():
            if (self.restart_service(service_name)):
                # counts every job of the service, renewed or not
                success += job_count
        self.output.status('Renewal finished: ', success, '/', len(jobs), ' certificates served by restarted services\n')
        return RenewalAggregate(total=len(jobs), success=success, results=results)
