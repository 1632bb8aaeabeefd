"""Path-style subset of the S3 REST API backed by local storage."""
import mimetypes
from xml.sax.saxutils import escape

from fastapi import APIRouter, Request, Response, status

from s3local.errors import NoSuchBucketError, StorageError
from s3local.storage import LocalStorage

router = APIRouter(tags=["s3"])

XML_MEDIA_TYPE = "application/xml"
S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


class BucketNotEmptyError(StorageError):
    code = "BucketNotEmpty"
    status_code = 409

    def __init__(self, bucket: str) -> None:
        super().__init__(f"The bucket you tried to delete is not empty: {bucket}")


def error_response(exc: StorageError, resource: str) -> Response:
    """Render a storage error as an S3 XML error document."""
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<Error><Code>{exc.code}</Code><Message>{escape(str(exc))}</Message>"
        f"<Resource>{escape(resource)}</Resource></Error>"
    )
    return Response(content=body, status_code=exc.status_code, media_type=XML_MEDIA_TYPE)


def _storage(request: Request) -> LocalStorage:
    return request.app.state.runtime.storage


@router.get("/")
def list_buckets(request: Request) -> Response:
    buckets = "".join(
        f"<Bucket><Name>{escape(name)}</Name></Bucket>" for name in _storage(request).list_buckets()
    )
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<ListAllMyBucketsResult xmlns="{S3_NAMESPACE}">'
        f"<Buckets>{buckets}</Buckets></ListAllMyBucketsResult>"
    )
    return Response(content=body, media_type=XML_MEDIA_TYPE)


@router.put("/{bucket}")
def create_bucket(bucket: str, request: Request) -> Response:
    _storage(request).create_bucket(bucket)
    return Response(status_code=status.HTTP_200_OK, headers={"Location": f"/{bucket}"})


@router.delete("/{bucket}")
def delete_bucket(bucket: str, request: Request) -> Response:
    """Delete an empty bucket, as S3 does without ``--force``."""
    storage = _storage(request)
    if not storage.bucket_exists(bucket):
        raise NoSuchBucketError(bucket)
    if storage.list_objects(bucket):
        raise BucketNotEmptyError(bucket)
    storage.remove_bucket(bucket)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{bucket}")
def list_objects(bucket: str, request: Request, prefix: str = "") -> Response:
    storage = _storage(request)
    keys = storage.list_objects(bucket, prefix)
    contents = "".join(f"<Contents><Key>{escape(key)}</Key></Contents>" for key in keys)
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<ListBucketResult xmlns="{S3_NAMESPACE}">'
        f"<Name>{escape(bucket)}</Name><Prefix>{escape(prefix)}</Prefix>"
        f"<KeyCount>{len(keys)}</KeyCount><IsTruncated>false</IsTruncated>"
        f"{contents}</ListBucketResult>"
    )
    return Response(content=body, media_type=XML_MEDIA_TYPE)


@router.put("/{bucket}/{key:path}")
async def put_object(bucket: str, key: str, request: Request) -> Response:
    body = await request.body()
    etag = _storage(request).put_object(bucket, key, body)
    return Response(status_code=status.HTTP_200_OK, headers={"ETag": f'"{etag}"'})


@router.api_route("/{bucket}/{key:path}", methods=["GET", "HEAD"])
def get_object(bucket: str, key: str, request: Request) -> Response:
    data = _storage(request).get_object(bucket, key)
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    if request.method == "HEAD":
        return Response(
            media_type=media_type,
            headers={"Content-Length": str(len(data))},
        )
    return Response(content=data, media_type=media_type)


@router.delete("/{bucket}/{key:path}")
def delete_object(bucket: str, key: str, request: Request) -> Response:
    _storage(request).delete_object(bucket, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
