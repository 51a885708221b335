import pytest

pytestmark = pytest.mark.anyio


async def add_category(client, admin, name, **extra):
    r = await client.post("/invested-items/categories", headers=admin["headers"], json={"name": name, **extra})
    assert r.status_code == 200
    return r.json()


async def add_item(client, admin, name, category_id, **extra):
    r = await client.post("/invested-items", headers=admin["headers"],
                          json={"name": name, "categoryId": category_id, **extra})
    assert r.status_code == 200
    return r.json()


# Categories

async def test_categories_nest_and_count_items(client, admin):
    kitchen = await add_category(client, admin, "  Kitchen ", description="  ")
    assert kitchen["name"] == "Kitchen"
    assert kitchen["description"] is None
    assert kitchen["parentCategoryId"] is None

    ovens = await add_category(client, admin, "Ovens", parentCategoryId=kitchen["id"])
    await add_category(client, admin, "Burners", parentCategoryId=ovens["id"])
    await add_category(client, admin, "Furniture")
    await add_item(client, admin, "Deck oven", ovens["id"])
    await add_item(client, admin, "Pizza oven", ovens["id"])

    r = await client.get("/invested-items/categories", headers=admin["headers"])
    assert r.status_code == 200
    tree = r.json()
    assert [c["name"] for c in tree] == ["Furniture", "Kitchen"]
    sub = tree[1]["subCategories"][0]
    assert sub["name"] == "Ovens"
    assert sub["itemCount"] == 2
    assert [c["name"] for c in sub["subCategories"]] == ["Burners"]


async def test_create_category_validation(client, admin):
    r = await client.post("/invested-items/categories", headers=admin["headers"], json={"name": "   "})
    assert r.status_code == 400
    assert r.json()["detail"] == "Category name is required"

    r = await client.post("/invested-items/categories", headers=admin["headers"],
                          json={"name": "Ovens", "parentCategoryId": "64b7f0c0ffee00000000abcd"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Parent category not found"


async def test_category_parent_cannot_form_a_cycle(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    ovens = await add_category(client, admin, "Ovens", parentCategoryId=kitchen["id"])
    path = f"/invested-items/categories/{kitchen['id']}"

    r = await client.patch(path, headers=admin["headers"], json={"parentCategoryId": kitchen["id"]})
    assert r.status_code == 400
    assert r.json()["detail"] == "Category cannot be its own parent"

    r = await client.patch(path, headers=admin["headers"], json={"parentCategoryId": ovens["id"]})
    assert r.status_code == 400
    assert r.json()["detail"] == "Category cannot be nested under its own subcategory"


async def test_update_category(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    ovens = await add_category(client, admin, "Ovens", parentCategoryId=kitchen["id"])
    path = f"/invested-items/categories/{ovens['id']}"

    r = await client.patch(path, headers=admin["headers"], json={"name": "Ovens & Ranges", "parentCategoryId": None})
    assert r.status_code == 200
    assert r.json()["name"] == "Ovens & Ranges"
    assert r.json()["parentCategoryId"] is None

    r = await client.patch(path, headers=admin["headers"], json={"name": ""})
    assert r.status_code == 400
    assert r.json()["detail"] == "Category name is required"

    r = await client.patch(path, headers=admin["headers"], json={})
    assert r.status_code == 400
    assert r.json()["detail"] == "No fields to update"

    r = await client.patch("/invested-items/categories/64b7f0c0ffee00000000abcd", headers=admin["headers"],
                           json={"name": "Gone"})
    assert r.status_code == 404


async def test_delete_category_requires_it_to_be_empty(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    ovens = await add_category(client, admin, "Ovens", parentCategoryId=kitchen["id"])
    item = await add_item(client, admin, "Deck oven", ovens["id"])

    r = await client.delete(f"/invested-items/categories/{kitchen['id']}", headers=admin["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot delete category with subcategories. Please delete subcategories first."

    r = await client.delete(f"/invested-items/categories/{ovens['id']}", headers=admin["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot delete category with items. Please delete items first."

    assert (await client.delete(f"/invested-items/{item['id']}", headers=admin["headers"])).status_code == 200
    r = await client.delete(f"/invested-items/categories/{ovens['id']}", headers=admin["headers"])
    assert r.json() == {"message": "Category deleted"}
    r = await client.delete(f"/invested-items/categories/{kitchen['id']}", headers=admin["headers"])
    assert r.status_code == 200


# Items

async def test_items_carry_category_and_parent(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    ovens = await add_category(client, admin, "Ovens", parentCategoryId=kitchen["id"])
    item = await add_item(client, admin, " Deck oven ", ovens["id"], customFields={"cost": 1200, "vendor": "Bake Co"})

    assert item["name"] == "Deck oven"
    assert item["customFields"] == {"cost": 1200, "vendor": "Bake Co"}
    assert item["category"]["name"] == "Ovens"
    assert item["category"]["parentCategory"]["name"] == "Kitchen"


async def test_list_items_newest_first_and_by_category(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    furniture = await add_category(client, admin, "Furniture")
    await add_item(client, admin, "Mixer", kitchen["id"])
    await add_item(client, admin, "Tables", furniture["id"])
    await add_item(client, admin, "Fryer", kitchen["id"])

    r = await client.get("/invested-items", headers=admin["headers"])
    assert [i["name"] for i in r.json()] == ["Fryer", "Tables", "Mixer"]

    r = await client.get("/invested-items", headers=admin["headers"], params={"categoryId": kitchen["id"]})
    assert [i["name"] for i in r.json()] == ["Fryer", "Mixer"]


async def test_create_item_validation(client, admin):
    r = await client.post("/invested-items", headers=admin["headers"], json={"name": " "})
    assert r.status_code == 400
    assert r.json()["detail"] == "Item name is required, Category is required"

    r = await client.post("/invested-items", headers=admin["headers"],
                          json={"name": "Mixer", "categoryId": "64b7f0c0ffee00000000abcd"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Category not found"


async def test_update_and_delete_item(client, admin):
    kitchen = await add_category(client, admin, "Kitchen")
    furniture = await add_category(client, admin, "Furniture")
    item = await add_item(client, admin, "Mixer", kitchen["id"])
    path = f"/invested-items/{item['id']}"

    r = await client.patch(path, headers=admin["headers"],
                           json={"categoryId": furniture["id"], "customFields": {"cost": 80}})
    assert r.status_code == 200
    assert r.json()["name"] == "Mixer"
    assert r.json()["category"]["name"] == "Furniture"
    assert r.json()["customFields"] == {"cost": 80}

    r = await client.patch(path, headers=admin["headers"], json={"name": ""})
    assert r.status_code == 400
    assert r.json()["detail"] == "Item name is required"

    r = await client.delete(path, headers=admin["headers"])
    assert r.json() == {"message": "Item deleted"}
    r = await client.patch(path, headers=admin["headers"], json={"name": "Mixer"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Item not found"


async def test_invested_items_are_admin_only(client, customer):
    assert (await client.get("/invested-items", headers=customer["headers"])).status_code == 401
    assert (await client.get("/invested-items/categories")).status_code == 401
    r = await client.post("/invested-items/categories", headers=customer["headers"], json={"name": "Kitchen"})
    assert r.status_code == 401
