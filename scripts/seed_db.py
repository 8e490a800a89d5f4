"""
Seed database with a demo tenant, its default roles and two users.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.core.database import db_manager
from app.core.security import hash_password
from app.features.rbac.bindings import BindingManager
from app.features.rbac.bootstrap import bootstrap_tenant
from app.features.rbac.permissions import PermissionRegistry
from app.features.rbac.roles import RoleRegistry
from app.models.tenant import Tenant
from app.models.user import User


async def seed_data() -> None:
    """Create initial demo data."""
    print("🌱 Seeding database...")

    db_manager.init()
    await db_manager.create_all()

    async for db in db_manager.get_session():
        result = await db.execute(select(Tenant))
        if result.first():
            print("⚠️  Database already contains data. Skipping seed.")
            return

        tenant = Tenant(name="Acme Store", slug="acme", domain="shop.acme.com")
        db.add(tenant)
        await db.commit()

        bootstrap = await bootstrap_tenant(db, tenant.id)
        print(f"✅ Bootstrapped tenant: {tenant.slug} ({bootstrap.permissions_total} permissions)")

        # Platform wildcard, held only by the seeded super admin
        wildcard = await PermissionRegistry.create(
            db,
            resource="*",
            action="manage",
            tenant_id=tenant.id,
            description="Platform administration",
        )
        super_admin_role = await RoleRegistry.find_by_name(db, "super_admin", tenant.id)
        await BindingManager.add_permissions_to_role(db, super_admin_role.id, [wildcard.id], tenant.id)

        admin_user = User(
            email="admin@acme.com",
            hashed_password=hash_password("Admin123!"),
            full_name="Admin User",
        )
        customer_user = User(
            email="alice@acme.com",
            hashed_password=hash_password("Alice123!"),
            full_name="Alice Customer",
        )
        db.add_all([admin_user, customer_user])
        await db.commit()

        await BindingManager.assign_role(db, admin_user.id, "super_admin", tenant.id)
        await BindingManager.assign_role(db, customer_user.id, "customer", tenant.id)

        print(f"✅ Created super admin: {admin_user.email} (password: Admin123!)")
        print(f"✅ Created customer: {customer_user.email} (password: Alice123!)")

    await db_manager.close()
    print("🎉 Seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed_data())
