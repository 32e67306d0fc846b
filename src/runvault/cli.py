"""Typer-powered command line for ``run-vault``.

A single command resolves settings, renders the Vault configuration file and
the systemd unit, then reloads systemd and restarts Vault. Every stage runs to
completion before the next begins; any failure stops the run with exit code 1
after it has been logged.
"""
from __future__ import annotations

import importlib
import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import NoReturn

import typer
from rich.console import Console
from typer.core import TyperCommand

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .documents import build_config_document, build_unit_document
from .errors import RunVaultError, UnrecognizedOption
from .exit_codes import ExitCode
from .launcher import Launcher, RenderedArtifacts
from .logging import OperationScope, StructuredLogger
from .providers import (
    BinaryVersionProbe,
    Ec2MetadataProvider,
    FileOwnerLookup,
    InstanceMetadataProvider,
    PathOwnerLookup,
    SystemdProvider,
    VersionProbe,
)
from .resolver import ResolvedConfig, RunOptions, resolve_config
from .templates import TemplateEngine
from .versioning import ui_available

console = Console()


def _click_exceptions() -> ModuleType:
    """Return the exceptions module of the click that ``TyperCommand`` builds on.

    Recent Typer releases ship their own copy of click, so the classes raised
    while parsing are not necessarily those of the standalone package.
    """
    for base in TyperCommand.__mro__:
        module = base.__module__
        if base.__name__ == "Command" and module.endswith(".core") and module != "typer.core":
            return importlib.import_module(module.rpartition(".")[0] + ".exceptions")
    raise ImportError("TyperCommand is not derived from a click Command")


_CLICK_EXCEPTIONS = _click_exceptions()


class RunVaultCommand(TyperCommand):
    """Command class that reports usage errors with exit code 1."""

    def parse_args(self, ctx: typer.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except _CLICK_EXCEPTIONS.NoSuchOption as exc:
            _command_error(ctx, StructuredLogger(None), None, UnrecognizedOption(exc.option_name))
        except _CLICK_EXCEPTIONS.UsageError as exc:
            exc.exit_code = int(ExitCode.FAILURE)
            raise


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"run-vault {__version__}")
        raise typer.Exit(code=ExitCode.OK)


TLS_CERT_FILE_OPTION = typer.Option(
    None,
    "--tls-cert-file",
    help="Path to the certificate file for TLS (required).",
)
TLS_KEY_FILE_OPTION = typer.Option(
    None,
    "--tls-key-file",
    help="Path to the private key for the TLS certificate (required).",
)
PORT_OPTION = typer.Option(
    None,
    "--port",
    help="The port for Vault to listen on. [default: 8200]",
)
CLUSTER_PORT_OPTION = typer.Option(
    None,
    "--cluster-port",
    help="The port for Vault to listen on for server-to-server requests. [default: --port + 1]",
)
API_ADDR_OPTION = typer.Option(
    None,
    "--api-addr",
    help="The full address to use for Client Redirection. "
    "[default: https://<instance-private-ip>:<port>]",
)
CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    help="The path to the Vault config folder. [default: ../config relative to this script]",
)
BIN_DIR_OPTION = typer.Option(
    None,
    "--bin-dir",
    help="The path to the folder with the Vault binary. [default: ../bin relative to this script]",
)
LOG_LEVEL_OPTION = typer.Option(
    None,
    "--log-level",
    help="The log verbosity to use with Vault. [default: info]",
)
SYSTEMD_STDOUT_OPTION = typer.Option(
    None,
    "--systemd-stdout",
    help="The StandardOutput option of the systemd unit. [default: systemd default]",
)
SYSTEMD_STDERR_OPTION = typer.Option(
    None,
    "--systemd-stderr",
    help="The StandardError option of the systemd unit. [default: systemd default]",
)
USER_OPTION = typer.Option(
    None,
    "--user",
    help="The user to run Vault as. [default: owner of --config-dir]",
)
SKIP_CONFIG_OPTION = typer.Option(
    False,
    "--skip-vault-config",
    help="Do not generate a Vault config file; assume one already exists.",
)
ENABLE_S3_OPTION = typer.Option(
    False,
    "--enable-s3-backend",
    help="Use S3 as the storage backend and Consul as the HA coordination store.",
)
S3_BUCKET_OPTION = typer.Option(
    None,
    "--s3-bucket",
    help="The name of the S3 bucket to use (required with --enable-s3-backend).",
)
S3_BUCKET_REGION_OPTION = typer.Option(
    None,
    "--s3-bucket-region",
    help="The AWS region of the S3 bucket (required with --enable-s3-backend).",
)
ENABLE_AUTO_UNSEAL_OPTION = typer.Option(
    False,
    "--enable-auto-unseal",
    help="Enable the AWS KMS auto-unseal feature.",
)
KMS_KEY_ID_OPTION = typer.Option(
    None,
    "--auto-unseal-kms-key-id",
    help="The key id of the AWS KMS key (required with --enable-auto-unseal).",
)
KMS_KEY_REGION_OPTION = typer.Option(
    None,
    "--auto-unseal-kms-key-region",
    help="The AWS region of the KMS key (required with --enable-auto-unseal).",
)
AUTO_UNSEAL_ENDPOINT_OPTION = typer.Option(
    None,
    "--auto-unseal-endpoint",
    help="The KMS API endpoint to use for auto-unseal. [default: AWS default]",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print the rendered files without writing them or touching systemd.",
)
DEFAULTS_FILE_OPTION = typer.Option(
    None,
    "--defaults-file",
    dir_okay=False,
    help="Override the path to run-vault's YAML defaults file.",
)
VERSION_OPTION = typer.Option(
    False,
    "--version",
    "-V",
    callback=_version_callback,
    is_eager=True,
    help="Show the run-vault version and exit.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Configure and run a Vault server under systemd.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by the pipeline stages."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    metadata: InstanceMetadataProvider
    owners: FileOwnerLookup
    systemd: SystemdProvider
    launcher: Launcher
    version_probe: Callable[[Path], VersionProbe]


def _ensure_runtime(ctx: typer.Context, config: AppConfig) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    logger = StructuredLogger(config.logs_dir)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    metadata = Ec2MetadataProvider(
        endpoint=config.metadata.endpoint,
        timeout=config.metadata.timeout,
        token_ttl=config.metadata.token_ttl,
    )
    owners = PathOwnerLookup()
    systemd = SystemdProvider(
        unit_path=config.systemd.unit_path,
        systemctl_bin=config.systemd.systemctl_bin,
    )
    runtime = RuntimeContext(
        config=config,
        logger=logger,
        templates=templates,
        metadata=metadata,
        owners=owners,
        systemd=systemd,
        launcher=Launcher(systemd=systemd, owners=owners),
        version_probe=BinaryVersionProbe,
    )
    ctx.obj = runtime
    return runtime


def _command_error(
    ctx: typer.Context,
    logger: StructuredLogger,
    op: OperationScope | None,
    exc: RunVaultError,
) -> NoReturn:
    """Log *exc*, print usage where it helps, and terminate with exit code 1."""
    if exc.show_usage:
        typer.echo(ctx.get_usage(), err=True)
    message = str(exc)
    logger.error(message)
    if op is not None:
        op.error(message, errors=[type(exc).__name__], rc=int(ExitCode.FAILURE))
    raise typer.Exit(code=ExitCode.FAILURE)


def _render_artifacts(
    runtime: RuntimeContext,
    resolved: ResolvedConfig,
    op: OperationScope,
) -> RenderedArtifacts:
    """Render both documents in memory; nothing is written here."""
    config_text: str | None = None
    if resolved.skip_config:
        runtime.logger.info("--skip-vault-config set, so will not generate a default Vault config.")
        op.add_step("config.render", status="skipped", detail="--skip-vault-config")
    else:
        ui_enabled = ui_available(
            runtime.version_probe(resolved.vault_binary),
            runtime.config.ui_min_version,
            logger=runtime.logger,
        )
        op.add_step(
            "version.gate",
            detail=f"minimum={runtime.config.ui_min_version} ui={ui_enabled}",
        )
        runtime.logger.info(f"Creating default Vault config file in {resolved.config_path}")
        document = build_config_document(resolved, ui_enabled=ui_enabled)
        config_text = document.render(runtime.templates)
        op.add_step("config.render", detail="fragments=" + ",".join(document.names()))

    runtime.logger.info(f"Creating systemd config file to run Vault in {runtime.systemd.unit_path}")
    unit = build_unit_document(resolved)
    unit_text = unit.render(runtime.templates)
    op.add_step("systemd.render", detail="sections=" + ",".join(unit.names()))

    return RenderedArtifacts(
        unit_text=unit_text,
        config_path=resolved.config_path,
        user=resolved.user,
        config_text=config_text,
    )


def _print_dry_run(runtime: RuntimeContext, artifacts: RenderedArtifacts) -> None:
    if artifacts.config_text is not None:
        console.print(f"# {artifacts.config_path}", markup=False, highlight=False, soft_wrap=True)
        console.print(artifacts.config_text, markup=False, highlight=False, soft_wrap=True)
    console.print(f"# {runtime.systemd.unit_path}", markup=False, highlight=False, soft_wrap=True)
    console.print(artifacts.unit_text, markup=False, highlight=False, soft_wrap=True)


@app.command(cls=RunVaultCommand)
def run(
    ctx: typer.Context,
    tls_cert_file: str | None = TLS_CERT_FILE_OPTION,
    tls_key_file: str | None = TLS_KEY_FILE_OPTION,
    port: int | None = PORT_OPTION,
    cluster_port: int | None = CLUSTER_PORT_OPTION,
    api_addr: str | None = API_ADDR_OPTION,
    config_dir: str | None = CONFIG_DIR_OPTION,
    bin_dir: str | None = BIN_DIR_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
    systemd_stdout: str | None = SYSTEMD_STDOUT_OPTION,
    systemd_stderr: str | None = SYSTEMD_STDERR_OPTION,
    user: str | None = USER_OPTION,
    skip_vault_config: bool = SKIP_CONFIG_OPTION,
    enable_s3_backend: bool = ENABLE_S3_OPTION,
    s3_bucket: str | None = S3_BUCKET_OPTION,
    s3_bucket_region: str | None = S3_BUCKET_REGION_OPTION,
    enable_auto_unseal: bool = ENABLE_AUTO_UNSEAL_OPTION,
    auto_unseal_kms_key_id: str | None = KMS_KEY_ID_OPTION,
    auto_unseal_kms_key_region: str | None = KMS_KEY_REGION_OPTION,
    auto_unseal_endpoint: str | None = AUTO_UNSEAL_ENDPOINT_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    defaults_file: Path | None = DEFAULTS_FILE_OPTION,
    version: bool = VERSION_OPTION,
) -> None:
    """Configure and run a Vault server under systemd.

    Renders the Vault config file and the vault.service unit, then reloads
    systemd and restarts Vault.
    """
    options = RunOptions(
        tls_cert_file=tls_cert_file,
        tls_key_file=tls_key_file,
        port=port,
        cluster_port=cluster_port,
        api_addr=api_addr,
        config_dir=config_dir,
        bin_dir=bin_dir,
        log_level=log_level,
        systemd_stdout=systemd_stdout,
        systemd_stderr=systemd_stderr,
        user=user,
        skip_config=skip_vault_config,
        enable_s3_backend=enable_s3_backend,
        s3_bucket=s3_bucket,
        s3_bucket_region=s3_bucket_region,
        enable_auto_unseal=enable_auto_unseal,
        auto_unseal_kms_key_id=auto_unseal_kms_key_id,
        auto_unseal_kms_key_region=auto_unseal_kms_key_region,
        auto_unseal_endpoint=auto_unseal_endpoint,
    )

    try:
        config = load_config(config_file=defaults_file)
    except ConfigError as exc:
        _command_error(ctx, StructuredLogger(None), None, exc)

    runtime = _ensure_runtime(ctx, config)
    with runtime.logger.operation(
        "run",
        args={
            "tls_cert_file": tls_cert_file,
            "tls_key_file": tls_key_file,
            "port": port,
            "cluster_port": cluster_port,
            "skip_vault_config": skip_vault_config,
            "enable_s3_backend": enable_s3_backend,
            "enable_auto_unseal": enable_auto_unseal,
            "dry_run": dry_run,
        },
        target={"kind": "service", "unit": runtime.systemd.unit_name},
    ) as op:
        try:
            resolved = resolve_config(
                options,
                runtime.config,
                metadata=runtime.metadata,
                owners=runtime.owners,
            )
            op.add_step(
                "resolve",
                detail=(
                    f"port={resolved.port} cluster_port={resolved.cluster_port} "
                    f"api_addr={resolved.api_addr} user={resolved.user}"
                ),
            )
            artifacts = _render_artifacts(runtime, resolved, op)

            if dry_run:
                _print_dry_run(runtime, artifacts)
                op.success("Dry run complete.", changed=0, context=resolved.to_dict())
                return

            runtime.logger.info("Reloading systemd config and starting Vault")
            result = runtime.launcher.apply(artifacts, op=op)
        except RunVaultError as exc:
            _command_error(ctx, runtime.logger, op, exc)

        runtime.logger.info(f"Vault restart requested via {runtime.systemd.unit_name}")
        op.success(
            "Vault configured and restart requested.",
            changed=result.changed,
            context=resolved.to_dict(),
        )


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RunVaultCommand", "RuntimeContext", "app", "main"]
