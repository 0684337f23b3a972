"""
Checkpoint commands: create, verify
"""

import os
from typing import Optional, Union

import typer

from auditchain import __version__
from auditchain.checkpoint import (
    CheckpointStore,
    S3CheckpointStore,
    SigningKey,
    VerifyingKey,
    create_checkpoint,
    ensure_keypair,
    verify_checkpoint,
)
from auditchain.config import Settings
from auditchain.core.errors import AuditChainError

from .common import console, database_url_option, fail, json_option, open_store, print_json

app = typer.Typer()


def _anchor_store(settings: Settings, s3: bool) -> Union[CheckpointStore, S3CheckpointStore]:
    if s3:
        if not settings.s3_bucket:
            raise AuditChainError("--s3 requires AUDITCHAIN_S3_BUCKET")
        return S3CheckpointStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
        )
    return CheckpointStore(settings.checkpoint_dir)


@app.command()
def create(
    database_url: Optional[str] = database_url_option(),
    key_path: Optional[str] = typer.Option(
        None,
        "--key",
        "-k",
        help="Ed25519 private key PEM (default: AUDITCHAIN_SIGNING_KEY)",
    ),
    generate_key: bool = typer.Option(False, "--generate-key", help="Generate the key if it does not exist"),
    s3: bool = typer.Option(False, "--s3", help="Upload to the configured S3 bucket instead of the local directory"),
    json_output: bool = json_option(),
):
    """
    Sign the current chain head and store it as an external anchor.

    Examples:
        auditctl checkpoint create --generate-key
        auditctl checkpoint create --s3
    """
    settings = Settings.from_env()
    key_path = os.path.expanduser(key_path or settings.signing_key_path)
    try:
        if generate_key:
            ensure_keypair(key_path)
        signing_key = SigningKey.load_from_file(key_path)
        target = _anchor_store(settings, s3)
        checkpoint = create_checkpoint(
            open_store(database_url),
            signing_key,
            meta={"source": "auditctl checkpoint create", "cli_version": __version__},
        )
        location = target.save(checkpoint)
    except FileNotFoundError:
        fail(f"signing key not found: {key_path} (use --generate-key)", json_output)
    except (AuditChainError, ValueError) as e:
        fail(str(e), json_output)

    if json_output:
        print_json({"success": True, "location": location, **checkpoint.to_dict()})
        return
    console.print("[green]✓ Checkpoint created[/green]")
    console.print(f"  Location: [cyan]{location}[/cyan]")
    console.print(f"  Entry id: {checkpoint.entry_id}")
    console.print(f"  Head hash: {checkpoint.head_hash[:16]}...")
    console.print(f"  Public key ID: {checkpoint.pubkey_id}")


@app.command()
def verify(
    database_url: Optional[str] = database_url_option(),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Checkpoint file or S3 key (default: latest)"),
    pubkey: Optional[str] = typer.Option(
        None,
        "--pubkey",
        help="Ed25519 public key PEM (default: <signing key>.pub)",
    ),
    signature_only: bool = typer.Option(False, "--signature-only", help="Skip the live log check"),
    s3: bool = typer.Option(False, "--s3", help="Read from the configured S3 bucket"),
    json_output: bool = json_option(),
):
    """
    Verify an anchor's signature and re-check the anchored entry in the live log.

    Exit code 2 if verification fails.

    Examples:
        auditctl checkpoint verify
        auditctl checkpoint verify --path cp_000000000042_1a2b3c4d.json --pubkey auditor.pub
    """
    settings = Settings.from_env()
    pubkey_path = os.path.expanduser(pubkey or settings.signing_key_path + ".pub")
    try:
        source = _anchor_store(settings, s3)
        target = path or source.find_latest()
        if target is None:
            raise AuditChainError("no checkpoints found")
        checkpoint = source.load(target)
        verifying_key = VerifyingKey.load_from_file(pubkey_path)
        store = None if signature_only else open_store(database_url)
        result = verify_checkpoint(checkpoint, verifying_key, store=store)
    except FileNotFoundError as e:
        fail(f"file not found: {e.filename}", json_output)
    except (AuditChainError, ValueError, KeyError) as e:
        fail(str(e), json_output)

    if json_output:
        print_json({"checkpoint": target, **result.to_dict()})
    elif result.valid:
        console.print(f"[green]✓ Checkpoint valid[/green] ({target})")
        console.print("  Signature: valid")
        if not signature_only:
            console.print(f"  Entry {checkpoint.entry_id}: head hash matches")
    else:
        console.print(f"[red]✗ Checkpoint verification failed[/red] ({target})")
        console.print(f"  {result.error}")

    if not result.valid:
        raise typer.Exit(2)
