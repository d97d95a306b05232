from io import BytesIO

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from flatstore.buckets import BucketManager
from flatstore.errors import InvalidRequest, MethodNotAllowed, MissingField
from flatstore.objects import ObjectManager
from flatstore.xml_responses import (
    generate_xml_response,
    render_bucket,
    render_bucket_list,
    render_object,
)

router = APIRouter()

SUPPORTED_METHODS = ("GET", "PUT", "DELETE")
ALL_METHODS = ["GET", "PUT", "DELETE", "POST", "HEAD", "PATCH", "OPTIONS"]


def get_bucket_manager(request: Request) -> BucketManager:
    return request.app.state.buckets


def get_object_manager(request: Request) -> ObjectManager:
    return request.app.state.objects


# --- Bucket Operations ---

@router.get("/")
async def list_all_buckets(buckets: BucketManager = Depends(get_bucket_manager)):
    result = await run_in_threadpool(buckets.list_buckets)
    return generate_xml_response(render_bucket_list(result))


@router.put("/{bucket_name}")
async def create_bucket(bucket_name: str, buckets: BucketManager = Depends(get_bucket_manager)):
    bucket = await run_in_threadpool(buckets.create_bucket, bucket_name)
    return generate_xml_response(render_bucket(bucket))


@router.get("/{bucket_name}")
async def list_buckets(bucket_name: str, buckets: BucketManager = Depends(get_bucket_manager)):
    # Path-style GET on a single segment lists every bucket; the segment itself is ignored
    result = await run_in_threadpool(buckets.list_buckets)
    return generate_xml_response(render_bucket_list(result))


@router.delete("/{bucket_name}")
async def delete_bucket(bucket_name: str, buckets: BucketManager = Depends(get_bucket_manager)):
    await run_in_threadpool(buckets.delete_bucket, bucket_name)
    return Response(status_code=204)


# --- Object Operations ---

@router.put("/{bucket_name}/{key}")
async def put_object(
    bucket_name: str,
    key: str,
    request: Request,
    objects: ObjectManager = Depends(get_object_manager),
):
    body = await request.body()
    content_type = request.headers.get("content-type")
    metadata = await run_in_threadpool(
        objects.put_object, bucket_name, key, BytesIO(body), content_type
    )
    return generate_xml_response(render_object(metadata))


@router.get("/{bucket_name}/{key}")
async def get_object(
    bucket_name: str,
    key: str,
    objects: ObjectManager = Depends(get_object_manager),
):
    data, content_type = await run_in_threadpool(objects.get_object, bucket_name, key)
    # Set verbatim so Starlette does not append a charset to text types
    return Response(content=data, headers={"Content-Type": content_type})


@router.delete("/{bucket_name}/{key}")
async def delete_object(
    bucket_name: str,
    key: str,
    objects: ObjectManager = Depends(get_object_manager),
):
    await run_in_threadpool(objects.delete_object, bucket_name, key)
    return Response(status_code=204)


# Must stay last: everything the routes above did not fully match ends up here
@router.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
async def unmatched(path: str, request: Request):
    segments = path.split("/")
    if len(segments) in (1, 2):
        if request.method in SUPPORTED_METHODS:
            raise MissingField("missing bucket name or object key in the URL")
        raise MethodNotAllowed(f"method {request.method} is not allowed on this path")
    raise InvalidRequest("invalid URL format")
