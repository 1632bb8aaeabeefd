"""Copies uploaded text files to processed/ in upper case."""
from pathlib import Path

BUCKETS = Path(__file__).parent / "buckets"


def s3hook(event, context):
    record = event["Records"][0]["s3"]
    bucket = record["bucket"]["name"]
    key = record["object"]["key"]

    source = BUCKETS / bucket / key
    target = BUCKETS / bucket / "processed" / Path(key).name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(source.read_text().upper())
    return {"processed": f"processed/{target.name}", "request_id": context.aws_request_id}
