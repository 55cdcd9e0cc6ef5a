#!/usr/bin/env python3
"""
blob_retention_sweep.py

Purpose:
  Delete objects older than a fixed 90 day retention window from a single
  object-storage container, page by page, and print a summary of how many
  objects were scanned and removed.

Features:
  - Azure Blob Storage (default) via connection string or account URL
  - S3 buckets via boto3 (--backend s3)
  - Paged listing with continuation tokens, one page in memory at a time
  - Per-deletion confirmation lines and a final summary block
  - JSON summary with --json

Safety:
  - There is NO dry-run. Every object last modified before now - 90 days is
    deleted, one at a time, and deletions cannot be undone.
  - Objects modified exactly at the cutoff are kept.
  - Any listing or delete error aborts the sweep immediately.

Requires:
  - azure-storage-blob, azure-identity (Azure backend)
  - boto3 (S3 backend)
  - Permissions: list + delete on the container / bucket

Examples:
  StorageConnectionString='DefaultEndpointsProtocol=https;AccountName=...;AccountKey=...' \\
    python blob_retention_sweep.py
  python blob_retention_sweep.py --container device-outputs --json
  python blob_retention_sweep.py --connection-string https://acct.blob.core.windows.net
  python blob_retention_sweep.py --backend s3 --container my-bucket --profile prod

Exit Codes:
  0 success
  1 invalid configuration or unexpected error
  130 interrupted
"""
from __future__ import annotations
import argparse
import base64
import binascii
import datetime as dt
import json
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient
from botocore.exceptions import ProfileNotFound

RETENTION_DAYS = 90
DEFAULT_CONTAINER = "skycast-ife-analytics-device-outputs"
CONNECTION_SETTING = "StorageConnectionString"

CONFIG_HELP = (
    "Invalid storage account information provided. Please confirm the AccountName and "
    f"AccountKey are valid in the {CONNECTION_SETTING} setting - then restart the sweep."
)

Descriptor = Dict[str, Any]
Page = Tuple[List[Descriptor], Optional[str]]


class ConfigurationError(ValueError):
    """Storage connection configuration is malformed."""


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(ts: dt.datetime) -> dt.datetime:
    # SDKs return aware datetimes; treat naive ones as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


def retention_cutoff(now: dt.datetime, days: int = RETENTION_DAYS) -> dt.datetime:
    return as_utc(now) - dt.timedelta(days=days)


def is_expired(descriptor: Descriptor, cutoff: dt.datetime) -> bool:
    """Strictly older than the cutoff. Equal timestamps are retained."""
    return as_utc(descriptor["last_modified"]) < cutoff


def partition_expired(descriptors: List[Descriptor], cutoff: dt.datetime) -> Tuple[List[Descriptor], List[Descriptor]]:
    expired: List[Descriptor] = []
    retained: List[Descriptor] = []
    for d in descriptors:
        (expired if is_expired(d, cutoff) else retained).append(d)
    return expired, retained


class AzureBlobContainer:
    """list_page/delete_object over an azure.storage.blob ContainerClient."""

    def __init__(self, client, page_size: Optional[int] = None):
        self.client = client
        self.name = client.container_name
        self.page_size = page_size

    def list_page(self, token: Optional[str]) -> Page:
        kwargs: Dict[str, Any] = {}
        if self.page_size:
            kwargs["results_per_page"] = self.page_size
        pages = self.client.list_blobs(**kwargs).by_page(continuation_token=token)
        # azure-core yields a first page even for an empty container
        page = next(pages)
        items = [{"name": b.name, "last_modified": b.last_modified} for b in page]
        return items, pages.continuation_token or None

    def delete_object(self, name: str) -> None:
        self.client.delete_blob(name)


class S3Bucket:
    """list_page/delete_object over a boto3 S3 client."""

    def __init__(self, client, bucket: str, page_size: Optional[int] = None):
        self.client = client
        self.name = bucket
        self.page_size = page_size

    def list_page(self, token: Optional[str]) -> Page:
        kwargs: Dict[str, Any] = {"Bucket": self.name}
        if self.page_size:
            kwargs["MaxKeys"] = self.page_size
        if token:
            kwargs["ContinuationToken"] = token
        resp = self.client.list_objects_v2(**kwargs)
        items = [{"name": o["Key"], "last_modified": o["LastModified"]} for o in resp.get("Contents", [])]
        if not resp.get("IsTruncated"):
            return items, None
        return items, resp.get("NextContinuationToken")

    def delete_object(self, name: str) -> None:
        self.client.delete_object(Bucket=self.name, Key=name)


def create_account_handle(backend: str, connection_string: Optional[str] = None,
                          profile: Optional[str] = None, region: Optional[str] = None):
    """Build the SDK account handle from explicit configuration.

    Azure accepts either a full connection string or an account URL; a URL is
    authenticated with DefaultAzureCredential. S3 returns a boto3 s3 client.
    Malformed configuration prints a corrective instruction to stderr and
    raises ConfigurationError. Nothing here touches the network.
    """
    try:
        if backend == "s3":
            # Client construction resolves the profile, so a bad one fails here
            sess = boto3.Session(profile_name=profile, region_name=region) if profile else boto3.Session(region_name=region)
            return sess.client("s3")
        if backend != "azure":
            raise ConfigurationError(f"unknown storage backend {backend!r}")
        if not connection_string or not connection_string.strip():
            raise ConfigurationError(f"{CONNECTION_SETTING} is not set")
        if connection_string.lower().startswith(("https://", "http://")):
            return BlobServiceClient(account_url=connection_string, credential=DefaultAzureCredential())
        handle = BlobServiceClient.from_connection_string(connection_string)
        # The SDK only decodes the key when signing the first request
        key = getattr(handle.credential, "account_key", None)
        if key:
            base64.b64decode(key, validate=True)
        return handle
    except ConfigurationError:
        print(CONFIG_HELP, file=sys.stderr)
        raise
    except (ValueError, binascii.Error, ProfileNotFound) as e:
        print(CONFIG_HELP, file=sys.stderr)
        raise ConfigurationError(str(e)) from e


def open_container(backend: str, handle, name: str, page_size: Optional[int] = None):
    # Local reference only; existence is not checked
    if backend == "s3":
        return S3Bucket(handle, name, page_size=page_size)
    return AzureBlobContainer(handle.get_container_client(name), page_size=page_size)


def run_sweep(container, clock: Callable[[], dt.datetime] = utcnow, out=None, record: bool = False) -> Dict[str, Any]:
    """Delete every object older than RETENTION_DAYS and return the summary.

    Pages are fetched one at a time and the cutoff is recomputed per page.
    With record=True the summary also lists every deleted object.
    Listing and delete errors propagate; there is no partial-failure recovery.
    """
    if out is None:
        out = sys.stdout
    start = clock()
    token = None
    total = 0
    deleted = 0
    pages = 0
    deleted_objects: List[Dict[str, Any]] = []

    print("Delete old objects in container\n ------------------------------", file=out)
    while True:
        descriptors, token = container.list_page(token)
        pages += 1
        cutoff = retention_cutoff(clock())
        expired, _ = partition_expired(descriptors, cutoff)
        print(f"Total - {len(descriptors)} - vs To Be Deleted - {len(expired)}", file=out)
        for d in expired:
            container.delete_object(d["name"])
            print(f" -   DELETED - {d['name']} - LastModified: {d['last_modified']}", file=out)
            if record:
                deleted_objects.append({"name": d["name"], "last_modified": d["last_modified"]})
        total += len(descriptors)
        deleted += len(expired)
        if not token:
            break

    end = clock()
    elapsed = end - start
    print("\n\n------------------------------ SUMMARY ------------------------------", file=out)
    print(f"DELETION COMPLETE - Total Deleted: {deleted}", file=out)
    print(f"DELETION START TIME: {start.isoformat()}", file=out)
    print(f"DELETION END TIME: {end.isoformat()}", file=out)
    print(f"Total Number of Objects before Deletion: {total}", file=out)
    print(f"Total Number of Objects after Deletion: {total - deleted}", file=out)
    print(f"Total Time Elapsed - {elapsed}", file=out)

    summary = {
        "container": getattr(container, "name", None),
        "retention_days": RETENTION_DAYS,
        "pages": pages,
        "total": total,
        "deleted": deleted,
        "remaining": total - deleted,
        "start_time": start,
        "end_time": end,
        "elapsed_seconds": elapsed.total_seconds(),
    }
    if record:
        summary["deleted_objects"] = deleted_objects
    return summary


def parse_args(argv=None):
    p = argparse.ArgumentParser(description=f"Delete objects older than {RETENTION_DAYS} days from a storage container (no dry-run)")
    p.add_argument("--backend", choices=["azure", "s3"], default="azure", help="Storage backend (default: azure)")
    p.add_argument("--container", default=DEFAULT_CONTAINER, help=f"Container or bucket name (default: {DEFAULT_CONTAINER})")
    p.add_argument("--connection-string", default=os.environ.get(CONNECTION_SETTING),
                   help=f"Azure connection string or account URL (default: ${CONNECTION_SETTING})")
    p.add_argument("--profile", help="AWS profile name (s3 backend)")
    p.add_argument("--region", help="AWS region (s3 backend)")
    p.add_argument("--page-size", type=int, help="Max objects per listing call (default: SDK maximum)")
    p.add_argument("--json", action="store_true", help="Print the summary as JSON as well")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    print("Blob Retention Sweep \n")
    handle = create_account_handle(args.backend, args.connection_string, args.profile, args.region)
    print(f"Connect to container {args.container}\n ------------------------------")
    container = open_container(args.backend, handle, args.container, page_size=args.page_size)
    summary = run_sweep(container, record=args.json)
    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    return 0


def cli():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    cli()
