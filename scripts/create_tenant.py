import argparse
import asyncio
from tooltrack.database import AsyncSessionLocal, engine, init_models
from tooltrack.schemas.tenant import TenantCreate, TenantResponse
from tooltrack.schemas.tool import ToolCreate, ToolResponse
from tooltrack.services.catalog_service import CatalogService
from tooltrack.services.tenant_service import TenantService
from tooltrack.utils.logging import setup_logging

def parse_tool(value: str) -> ToolCreate:
    """'Dewalt Drill' or 'Hilti TE 30=hammer drill,rotary hammer'."""
    name, _, aliases = value.partition("=")
    return ToolCreate(name=name, aliases=aliases.split(",") if aliases else [])

def build_parser():
    parser = argparse.ArgumentParser(description="Create a crew (tenant) and seed its tool catalog")
    parser.add_argument("slug")
    parser.add_argument("name")
    parser.add_argument("--join-code", help="Code phones text to the shared number to join")
    parser.add_argument("--routing-address", help="The crew's own Twilio number")
    parser.add_argument("--groups", help="Comma separated group names, turns groups on")
    parser.add_argument("--tool", action="append", default=[], type=parse_tool,
                        help="Catalog entry, 'Name' or 'Name=alias,alias'. Repeatable.")
    return parser

async def create_tenant(args):
    await init_models()
    groups = [g for g in (args.groups or "").split(",") if g.strip()]

    async with AsyncSessionLocal() as db:
        tenants = TenantService(db)
        if await tenants.get_by_slug(args.slug):
            raise SystemExit(f"Tenant {args.slug!r} already exists")

        tenant = await tenants.create_tenant(TenantCreate(
            slug=args.slug,
            name=args.name,
            join_code=args.join_code,
            routing_address=args.routing_address,
            groups_enabled=bool(groups),
            group_names=groups,
        ))
        print(TenantResponse.model_validate(tenant).model_dump_json(indent=2))

        catalog = CatalogService(db)
        for data in args.tool:
            tool = await catalog.add_tool(tenant.id, data)
            print(ToolResponse.model_validate(tool).model_dump_json())

    await engine.dispose()

if __name__ == "__main__":
    setup_logging()
    asyncio.run(create_tenant(build_parser().parse_args()))
