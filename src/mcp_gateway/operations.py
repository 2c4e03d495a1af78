"""
Standard Resource Operations
Registers the list/get/create/update/delete family for one resource

For a resource named "notes" this adds:
    notes_list            READ    paginated, shaped listing
    notes_get             READ    one resource, shaped
    notes_create          WRITE   create one resource
    notes_update          WRITE   apply the same changes to a batch of ids
    notes_delete          DELETE  delete a batch of ids
    notes_delete_matching DELETE  delete everything matching a filter
"""

from typing import Any, Dict, List, Optional

from .adapters import ResourceAdapter
from .descriptors import AffectedScope, OperationDescriptor, OperationKind, OperationRegistry
from .gateway import PREVIEW_SAMPLE_SIZE, OperationContext
from .schemas import (
    CreateInput,
    DeleteInput,
    DeleteMatchingInput,
    GetInput,
    ListInput,
    UpdateInput,
)
from .shaping import ShapingRequest

FULL_RESOURCE = ShapingRequest()


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


async def resolve_ids_scope(ctx: OperationContext, params: Any) -> AffectedScope:
    """Scope of a batch call: the distinct requested ids"""
    unique_ids = _unique(params.ids)
    return AffectedScope(
        count=len(unique_ids),
        binding={"ids": sorted(unique_ids)},
        sample=unique_ids[:PREVIEW_SAMPLE_SIZE],
    )


async def resolve_filter_scope(ctx: OperationContext, params: DeleteMatchingInput) -> AffectedScope:
    """Scope of a query-based call: whatever matches right now"""
    matched = await ctx.call(ctx.adapter.match_ids, params.filter)
    # Over-ceiling scopes fail before a token is issued or consumed
    ctx.batch.check_size(matched)
    return AffectedScope(
        count=len(matched),
        binding={"filter": params.filter, "ids": sorted(matched)},
        sample=matched[:PREVIEW_SAMPLE_SIZE],
    )


async def resolve_create_scope(ctx: OperationContext, params: CreateInput) -> AffectedScope:
    return AffectedScope(count=1, binding={"data": params.data})


def register_resource_operations(registry: OperationRegistry,
                                 resource: str,
                                 adapter: ResourceAdapter,
                                 *,
                                 include: Optional[List[str]] = None) -> List[OperationDescriptor]:
    """
    Register the standard operations for `resource` backed by `adapter`

    Args:
        include: subset of actions to register (default: all six)
    """
    id_field = adapter.id_field

    async def list_handler(ctx: OperationContext, params: ListInput, scope: None) -> Dict[str, Any]:
        page = await ctx.paginate(ctx.adapter.list, params.filter, params.page_size, params.page_token)
        page.items = ctx.shaper.shape_many(page.items, params.shaping())
        return page.to_dict()

    async def get_handler(ctx: OperationContext, params: GetInput, scope: None) -> Dict[str, Any]:
        item = await ctx.call(ctx.adapter.get, params.id)
        return {"item": ctx.shaper.shape(item, params.shaping())}

    async def create_handler(ctx: OperationContext, params: CreateInput, scope: AffectedScope) -> Dict[str, Any]:
        # Not idempotent: a retried create could duplicate
        item = await ctx.call_once(ctx.adapter.create, params.data)
        return {"id": item[id_field], "item": ctx.shaper.shape(item, FULL_RESOURCE)}

    async def update_handler(ctx: OperationContext, params: UpdateInput, scope: AffectedScope) -> Dict[str, Any]:
        async def apply(item_id: str) -> Any:
            return await ctx.adapter.update(item_id, params.changes)

        result = await ctx.run_batch(params.ids, apply)
        return result.to_dict()

    async def delete_handler(ctx: OperationContext, params: DeleteInput, scope: AffectedScope) -> Dict[str, Any]:
        result = await ctx.run_batch(params.ids, ctx.adapter.delete)
        return result.to_dict()

    async def delete_matching_handler(ctx: OperationContext, params: DeleteMatchingInput,
                                      scope: AffectedScope) -> Dict[str, Any]:
        # Act on the confirmed snapshot, not on a fresh query
        result = await ctx.run_batch(scope.binding["ids"], ctx.adapter.delete)
        return result.to_dict()

    table = {
        "list": OperationDescriptor(
            name=f"{resource}_list",
            resource=resource,
            kind=OperationKind.READ,
            input_model=ListInput,
            handler=list_handler,
            description=f"List {resource} matching a filter, one page at a time",
            adapter=adapter,
        ),
        "get": OperationDescriptor(
            name=f"{resource}_get",
            resource=resource,
            kind=OperationKind.READ,
            input_model=GetInput,
            handler=get_handler,
            description=f"Fetch one of {resource} by id",
            adapter=adapter,
        ),
        "create": OperationDescriptor(
            name=f"{resource}_create",
            resource=resource,
            kind=OperationKind.WRITE,
            input_model=CreateInput,
            handler=create_handler,
            resolve_scope=resolve_create_scope,
            description=f"Create one of {resource}",
            adapter=adapter,
        ),
        "update": OperationDescriptor(
            name=f"{resource}_update",
            resource=resource,
            kind=OperationKind.WRITE,
            input_model=UpdateInput,
            handler=update_handler,
            resolve_scope=resolve_ids_scope,
            idempotent=True,
            description=f"Apply the same changes to several {resource}; partial failures are reported per id",
            adapter=adapter,
        ),
        "delete": OperationDescriptor(
            name=f"{resource}_delete",
            resource=resource,
            kind=OperationKind.DELETE,
            input_model=DeleteInput,
            handler=delete_handler,
            resolve_scope=resolve_ids_scope,
            description=f"Delete {resource} by id; large scopes need a dry run and confirmToken",
            adapter=adapter,
        ),
        "delete_matching": OperationDescriptor(
            name=f"{resource}_delete_matching",
            resource=resource,
            kind=OperationKind.DELETE,
            input_model=DeleteMatchingInput,
            handler=delete_matching_handler,
            resolve_scope=resolve_filter_scope,
            description=f"Delete every {resource} matching a filter; large scopes need a dry run and confirmToken",
            adapter=adapter,
        ),
    }

    selected = include or list(table)
    unknown = set(selected) - set(table)
    if unknown:
        raise ValueError(f"Unknown standard actions: {sorted(unknown)}")
    return [registry.register(table[action]) for action in selected]
