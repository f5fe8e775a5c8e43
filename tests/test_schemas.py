import pytest
from pydantic import ValidationError

from app.schemas.category import CategoryCreate, CategoryUpdate


def test_name_is_trimmed_and_control_characters_dropped():
    category = CategoryCreate(name="  Garden\x00 Tools \n")

    assert category.name == "Garden Tools"


def test_blank_name_rejected():
    with pytest.raises(ValidationError):
        CategoryCreate(name="   ")


def test_description_keeps_inline_formatting_only():
    category = CategoryCreate(
        name="Toys",
        description='<p>Fun <strong>toys</strong></p><img src="x" onerror="alert(1)"><a href="javascript:alert(1)">x</a>',
    )

    assert "<strong>toys</strong>" in category.description
    assert "<img" not in category.description
    assert "javascript:" not in category.description


def test_image_url_must_be_http():
    assert CategoryCreate(name="Toys", image_url="https://cdn.example.com/toys.png").image_url
    with pytest.raises(ValidationError):
        CategoryCreate(name="Toys", image_url="/static/toys.png")


def test_parent_id_must_be_positive():
    with pytest.raises(ValidationError):
        CategoryCreate(name="Toys", parent_id=0)


def test_update_tracks_explicit_null_parent():
    assert "parent_id" in CategoryUpdate(parent_id=None).model_dump(exclude_unset=True)
    assert "parent_id" not in CategoryUpdate(name="Toys").model_dump(exclude_unset=True)


@pytest.mark.parametrize("field_name", ["name", "slug", "sort_order"])
def test_update_cannot_clear_required_fields(field_name):
    with pytest.raises(ValidationError):
        CategoryUpdate(**{field_name: None})


def test_sort_order_range():
    assert CategoryCreate(name="Toys", sort_order=999999).sort_order == 999999
    with pytest.raises(ValidationError):
        CategoryCreate(name="Toys", sort_order=1000000)
    with pytest.raises(ValidationError):
        CategoryUpdate(sort_order=-1)


@pytest.mark.parametrize("slug", ["double--hyphen", "-leading", "Upper", "a" * 101])
def test_invalid_slugs_rejected(slug):
    with pytest.raises(ValidationError):
        CategoryCreate(name="Toys", slug=slug)
