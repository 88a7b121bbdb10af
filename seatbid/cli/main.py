"""
SeatBid CLI - Command Line Interface for the course admission auction

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path

from seatbid.utils.logger import SeatBidLogger, setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (defaults to the configured data_dir)")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="JSON config file")
@click.option("--log-file", is_flag=True, help="Also write logs under the configured log_dir")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path, log_file):
    """SeatBid - Priority auction for quota-limited course seats"""
    import logging
    from seatbid.core.config import load_config

    config = load_config(config_path)

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=str(config.log_dir), log_to_file=log_file, force=True)
    if log_file:
        click.echo(f"Logging to {SeatBidLogger.log_file()}", err=True)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = Path(data_dir).expanduser() if data_dir else config.data_dir
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


def _load_university(ctx):
    from seatbid.core.storage import StorageManager
    from seatbid.core.university import University

    storage = StorageManager(ctx.obj["data_dir"])
    if not storage.has_snapshot():
        raise click.ClickException(f"No university stored in {ctx.obj['data_dir']} (run `seatbid demo --persist` first)")
    return University.load(storage, config=ctx.obj["config"])


# =============================================================================
# Key Commands
# =============================================================================


@cli.command("keygen")
@click.option("--name", default=None, help="Save the keypair as <data-dir>/keys/<name>.json")
@click.pass_context
def keygen(ctx, name):
    """Generate a secp256k1 keypair and its address"""
    from seatbid.crypto import generate_keypair

    kp = generate_keypair()
    click.echo(f"Address:     {kp.address}")
    click.echo(f"Public key:  0x{kp.public_key_hex}")

    if name:
        key_path = ctx.obj["data_dir"] / "keys" / f"{name}.json"
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.write_text(json.dumps({
            "name": name,
            "address": kp.address,
            "public_key": "0x" + kp.public_key_hex,
            "private_key": "0x" + kp.private_key_hex,
        }, indent=2))
        key_path.chmod(0o600)
        click.echo(f"Saved to:    {key_path}")
    else:
        click.echo(f"Private key: 0x{kp.private_key_hex}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--persist", is_flag=True, help="Store the resulting university in the data directory")
@click.option("--keep-bids", is_flag=True, help="Let accepted students keep their other bids")
@click.pass_context
def demo(ctx, persist, keep_bids):
    """Run a full bidding round with five students"""
    import dataclasses
    import time
    from seatbid.core.authorization import enrollment_hash, transfer_hash
    from seatbid.core.errors import ReplayedNonce
    from seatbid.core.storage import StorageManager
    from seatbid.core.university import University
    from seatbid.crypto import generate_keypair, sign_recoverable

    config = ctx.obj["config"]
    if keep_bids:
        config = dataclasses.replace(config, discard_on_accept=False)

    # Demo clock: jumps past the deadline instead of sleeping
    now = [int(time.time())]

    click.echo("=" * 60)
    click.echo("  SEATBID - DEMO")
    click.echo("=" * 60)
    click.echo()

    # Setup
    click.echo("Initializing university...")
    chief = generate_keypair()
    admin = generate_keypair()
    lecturer = generate_keypair()
    students = [generate_keypair() for _ in range(5)]

    storage = StorageManager(ctx.obj["data_dir"]) if persist else None
    if storage is not None and storage.has_snapshot():
        raise click.ClickException(f"{ctx.obj['data_dir']} already holds a university (pass another --data-dir)")
    uni = University(chief.address, config=config, storage=storage, clock=lambda: now[0])
    uni.init(chief.address, max_uoc=18, fee_per_uoc=1000)
    uni.add_admins(chief.address, [admin.address])
    uni.add_lecturer(admin.address, lecturer.address)
    uni.create_course(admin.address, "COMP6451", 2, 6, lecturer.address)
    uni.create_course(admin.address, "COMP3441", 2, 6, lecturer.address)
    click.echo("  Courses: COMP6451 (quota 2), COMP3441 (quota 2)")
    click.echo()

    # Enrolment
    click.echo("Enrolling students with admin-signed approvals...")
    for kp in students:
        signature = sign_recoverable(enrollment_hash(uni.instance_id, kp.address), admin.private_key)
        uni.enroll(kp.address, signature)
        minted = uni.pay_fees(kp.address, 18, 18 * 1000)
        click.echo(f"  {kp.address[:12]}... enrolled, {minted} tokens")
    uni.add_record_admins(chief.address, [admin.address])
    uni.pass_course(admin.address, "COMP1511", students[0].address)
    click.echo(f"  {students[0].address[:12]}... has completed COMP1511")
    click.echo()

    # Bidding
    click.echo("Opening bidding round...")
    end_time = uni.start_bidding_round(admin.address, 60)
    click.echo(f"  Round ends at {end_time}")
    for kp, amount in zip(students, [1200, 800, 1000, 600, 600]):
        uni.make_bid(kp.address, "COMP6451", amount)
    uni.make_bid(students[0].address, "COMP3441", 300)
    uni.make_bid(students[1].address, "COMP3441", 200)

    click.echo("  COMP6451 bids:")
    for address, amount in uni.get_bids("COMP6451"):
        click.echo(f"    {address[:12]}... {amount}")
    click.echo()

    # Transfer
    click.echo("Student 5 sells 100 tokens to student 4...")
    seller, buyer = students[4], students[3]
    signature = sign_recoverable(transfer_hash(uni.instance_id, buyer.address, 100, 1), seller.private_key)
    fee = uni.fees.transfer_fee(100)
    uni.receive_transfer(buyer.address, signature, 100, 1, fee)
    click.echo(f"  Transferred, fee {fee}")
    try:
        uni.receive_transfer(buyer.address, signature, 100, 1, fee)
    except ReplayedNonce as e:
        click.echo(f"  Replay rejected: {e}")
    click.echo()

    # Settlement
    click.echo("Closing round...")
    now[0] = end_time + 1
    result = uni.close_bidding(admin.address)
    for code in uni.get_courses():
        accepted = ", ".join(f"{a[:12]}..." for a in uni.get_accepted_students(code)) or "-"
        click.echo(f"  {code}: {accepted}")
    click.echo(f"  Settlement: {result.summary()}")
    click.echo()

    click.echo("Final balances:")
    for i, kp in enumerate(students, start=1):
        click.echo(f"  student {i}: {uni.get_balance(kp.address)}")
    click.echo()

    if storage is not None:
        click.echo(f"Stored in {storage.db_path}")
    click.echo("Demo complete!")


# =============================================================================
# Status / Stats Commands
# =============================================================================


@cli.command("status")
@click.pass_context
def status(ctx):
    """Show the stored university's round, courses and balances"""
    from seatbid.core.registry import StudentRecord

    uni = _load_university(ctx)

    click.echo("University Status")
    click.echo("-" * 40)
    state = "open" if uni.is_bidding_open() else "closed"
    click.echo(f"  Round: {uni.round.round_number} ({state}), ends {uni.get_bidding_end_time()}")
    click.echo()

    for code in uni.get_courses():
        course = uni.get_course(code)
        click.echo(f"  {code}: quota={course['quota']} weight={course['weight']} "
                   f"accepted={len(course['accepted'])} bids={len(course['bids'])}")
        for address in course["accepted"]:
            click.echo(f"    + {address}")
        for address, amount in course["bids"]:
            click.echo(f"    ? {address} {amount}")
    click.echo()

    click.echo("  Balances:")
    for holder in uni.ledger.holders():
        completed = uni.student_record.completed_courses(holder) if isinstance(uni.student_record, StudentRecord) else []
        passed = f" passed={','.join(completed)}" if completed else ""
        click.echo(f"    {holder} {uni.get_balance(holder)}{passed}")


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show statistics for the stored university"""
    uni = _load_university(ctx)
    click.echo(json.dumps(uni.stats(), indent=2))


if __name__ == "__main__":
    cli()
