#!/usr/bin/env python3
"""
Loyalty Permit CLI

Off-line tooling for delegated transfer permits: compute the digest a
holder signs, sign it, and recover the signer of a signature.

Usage:
    loyalty-permit address --private-key KEY
    loyalty-permit digest --token ADDR --from ADDR --to ADDR --amount N --nonce N --expiry TS
    loyalty-permit sign --private-key KEY --token ADDR --to ADDR --amount N --nonce N --expiry TS
    loyalty-permit recover --signature SIG --token ADDR --from ADDR --to ADDR ...
"""

import json
import sys
from typing import Callable, Optional

import click

from loyalty import __version__
from loyalty.config import load_config
from loyalty.constants import UINT256_MAX
from loyalty.crypto import PrivateKey, is_valid_address, to_checksum_address
from loyalty.exceptions import InvalidKeyError, InvalidSignatureError
from loyalty.ledger import Amount
from loyalty.permits import TransferPermit, recover_permit_signer


def _default_chain_id() -> int:
    return load_config().chain.chain_id


def _address(ctx, param, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not is_valid_address(value):
        raise click.BadParameter(f"not a 20-byte hex address: {value}")
    return to_checksum_address(value)


def _private_key(value: str) -> PrivateKey:
    try:
        return PrivateKey.from_hex(value)
    except InvalidKeyError as e:
        raise click.BadParameter(str(e), param_hint="'--private-key'")


def _amount(amount: str, whole: bool) -> int:
    try:
        value = Amount.make(amount).value if whole else int(amount)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'--amount'")
    if not 0 <= value <= UINT256_MAX:
        raise click.BadParameter(f"{amount} is not a uint256 amount", param_hint="'--amount'")
    return value


UINT256 = click.IntRange(0, UINT256_MAX)


def permit_options(require_sender: bool = True) -> Callable:
    """Options naming the seven permit fields."""
    def decorator(f: Callable) -> Callable:
        options = [
            click.option("--chain-id", type=UINT256, default=_default_chain_id, show_default="configured chain id",
                         help="Chain id the permit is valid on"),
            click.option("--token", required=True, callback=_address, help="Token contract address"),
            click.option("--from", "sender", required=require_sender, callback=_address,
                         help="Holder whose balance is moved"),
            click.option("--to", "recipient", required=True, callback=_address, help="Recipient address"),
            click.option("--amount", required=True, help="Amount in smallest units"),
            click.option("--whole", is_flag=True, help="Read --amount as whole tokens"),
            click.option("--nonce", type=UINT256, required=True, help="Holder's current nonce on the token"),
            click.option("--expiry", type=UINT256, required=True, help="Unix timestamp the permit expires at"),
        ]
        for option in reversed(options):
            f = option(f)
        return f
    return decorator


def _build_permit(chain_id, token, sender, recipient, amount, whole, nonce, expiry) -> TransferPermit:
    try:
        return TransferPermit(
            chain_id=chain_id,
            token_address=token,
            sender=sender,
            recipient=recipient,
            amount=_amount(amount, whole),
            nonce=nonce,
            expiry=expiry,
        )
    except ValueError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="loyalty-permit")
def cli():
    """Loyalty Permit Command Line Interface

    Build, sign and check delegated transfer permits.
    """
    pass


@cli.command("address")
@click.option("--private-key", envvar="LOYALTY_PRIVATE_KEY", required=True,
              help="Hex private key (or LOYALTY_PRIVATE_KEY)")
def address_cmd(private_key: str):
    """Print the address of a private key."""
    click.echo(_private_key(private_key).address)


@cli.command("digest")
@permit_options()
@click.option("--json", "as_json", is_flag=True, help="Print all fields as JSON")
def digest_cmd(chain_id, token, sender, recipient, amount, whole, nonce, expiry, as_json):
    """Print the digest a holder signs for a permit.

    Examples:

        loyalty-permit digest --token 0x... --from 0x... --to 0x... --amount 500 --whole --nonce 0 --expiry 1700000000
    """
    permit = _build_permit(chain_id, token, sender, recipient, amount, whole, nonce, expiry)
    if as_json:
        click.echo(json.dumps(permit.to_dict(), indent=2))
    else:
        click.echo('0x' + permit.digest.hex())


@cli.command("sign")
@click.option("--private-key", envvar="LOYALTY_PRIVATE_KEY", required=True,
              help="Hex private key of the holder (or LOYALTY_PRIVATE_KEY)")
@permit_options(require_sender=False)
@click.option("--json", "as_json", is_flag=True, help="Print permit and signature as JSON")
def sign_cmd(private_key, chain_id, token, sender, recipient, amount, whole, nonce, expiry, as_json):
    """Sign a permit; --from defaults to the key's address.

    Prints the 65-byte signature to pass to delegatedTransfer.
    """
    key = _private_key(private_key)
    if sender is None:
        sender = key.address
    elif sender != key.address:
        click.echo(click.style(
            f"WARNING: --from {sender} is not the signer {key.address}; the permit will not verify",
            fg="yellow",
        ), err=True)

    permit = _build_permit(chain_id, token, sender, recipient, amount, whole, nonce, expiry)
    signature = '0x' + permit.sign(key).hex()

    if as_json:
        data = permit.to_dict()
        data["signature"] = signature
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(signature)


@cli.command("recover")
@click.option("--signature", required=True, help="65-byte hex signature")
@permit_options()
def recover_cmd(signature, chain_id, token, sender, recipient, amount, whole, nonce, expiry):
    """Print the signer of a permit signature.

    Exits with status 1 when the signer is not --from.
    """
    permit = _build_permit(chain_id, token, sender, recipient, amount, whole, nonce, expiry)
    try:
        signer = recover_permit_signer(permit.digest, signature)
    except InvalidSignatureError as e:
        raise click.ClickException(str(e))

    click.echo(signer)
    if signer != permit.sender:
        click.echo(click.style(f"✗ Signer does not match --from {permit.sender}", fg="red"), err=True)
        sys.exit(1)
    click.echo(click.style("✓ Signature is valid for --from", fg="green"), err=True)


def main():
    cli()


if __name__ == "__main__":
    main()
