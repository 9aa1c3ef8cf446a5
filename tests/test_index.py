import pytest

from conftest import CLASSES_TEXT, LIST_TEXT
from udlf_api.dataset import DatasetIndex, DatasetPaths
from udlf_api.dataset.index import FileDetail, parse_classes_file
from udlf_api.errors import BadRequest, NotFound, OutOfBounds
from udlf_api.storage import LocalStorage


@pytest.fixture
def index():
    return DatasetIndex.from_text(LIST_TEXT, CLASSES_TEXT)


def test_first_page(index):
    page = index.list_page(1, 2)

    assert page.total_items == 3
    assert page.total_pages == 2
    assert page.current_page == 1
    assert page.page_size == 2
    assert [(e.ordinal, e.filename) for e in page.items] == [(1, "apple-1.gif"), (2, "apple-2.gif")]


def test_page_past_end_is_empty(index):
    page = index.list_page(5, 2)
    assert page.items == []
    assert page.total_pages == 2


@pytest.mark.parametrize("page_index, page_size", [(0, 10), (1, 0), (-1, 5)])
def test_invalid_page_arguments(index, page_index, page_size):
    with pytest.raises(BadRequest):
        index.list_page(page_index, page_size)


@pytest.mark.parametrize("page_size", [1, 2, 3, 4, 10])
def test_pages_cover_list_in_order(page_size):
    names = [f"img-{i}.gif" for i in range(1, 12)]
    index = DatasetIndex.from_text("\n".join(names))

    first = index.list_page(1, page_size)
    collected = []
    for k in range(1, first.total_pages + 1):
        collected.extend(e.filename for e in index.list_page(k, page_size).items)

    assert collected == names


def test_class_join(index):
    assert index.filenames_grouped_by_class() == {
        "apple": ["apple-1.gif", "apple-2.gif"],
        "bell": ["bell-1.gif"],
    }
    assert index.details_for_filenames(["bell-1.gif"]) == {"bell-1.gif": FileDetail("bell", 3)}
    assert index.details_for_filenames(["bell-1.gif"])["bell-1.gif"].to_dict() == {"class": "bell", "ordinal": 3}


def test_resolve_by_ordinals_fails_on_out_of_bounds(index):
    with pytest.raises(OutOfBounds) as excinfo:
        index.resolve_by_ordinals([2, 7])
    assert excinfo.value.ordinal == 7
    assert "7" in excinfo.value.message


def test_resolve_by_ordinals(index):
    entries = index.resolve_by_ordinals([3, 1])
    assert [(e.ordinal, e.filename) for e in entries] == [(3, "bell-1.gif"), (1, "apple-1.gif")]


def test_ordinal_lookup(index):
    assert index.get_ordinal_for("apple-2.gif") == 2
    assert index.get_ordinal_for(" apple-2.gif ") == 2
    with pytest.raises(NotFound):
        index.get_ordinal_for("zebra.gif")


def test_ordinal_round_trip(index):
    for n in range(1, len(index) + 1):
        assert index.get_ordinal_for(index.get_filename_at(n)) == n


def test_details_agree_with_ordinals():
    index = DatasetIndex.from_text(
        "a.gif\nb.gif\nc.gif\nd.gif\n",
        "c.gif:cats\na.gif:ants\nx.gif:ants\nd.gif:dogs\n",
    )
    details = index.details_by_filename()

    assert set(details) == {"a.gif", "c.gif", "d.gif"}
    for filename, detail in details.items():
        assert index.get_ordinal_for(filename) == detail.ordinal
        assert index.get_filename_at(detail.ordinal) == filename
        assert filename in index.filenames_grouped_by_class()[detail.class_name]


def test_details_for_ordinals_skips_unknown(index, caplog):
    details = index.details_for_ordinals([3, 9])
    assert details == {"bell-1.gif": FileDetail("bell", 3)}
    assert "No details found for line number 9" in caplog.text


def test_duplicates_last_occurrence_wins(caplog):
    index = DatasetIndex.from_text("a.gif\nb.gif\na.gif\n")
    assert len(index) == 3
    assert index.get_ordinal_for("a.gif") == 3
    assert "duplicate" in caplog.text


def test_blank_lines_do_not_take_ordinals():
    index = DatasetIndex.from_text("a.gif\n\n  \nb.gif\n")
    assert index.all_filenames() == ["a.gif", "b.gif"]
    assert index.get_ordinal_for("b.gif") == 2


def test_parse_classes_file_ignores_malformed_lines():
    grouped = parse_classes_file("a.gif:x\nbad line\nb.gif:\n:y\nc.gif:x:z\nd.gif : y \n")
    assert grouped == {"x": ["a.gif"], "y": ["d.gif"]}


def test_from_storage(dataset_dir):
    storage = LocalStorage()
    paths = DatasetPaths(
        dataset_list=str(dataset_dir / "lists.txt"),
        class_list=str(dataset_dir / "classes.txt"),
    )
    index = DatasetIndex.from_storage(storage, paths)
    assert index.all_filenames() == ["apple-1.gif", "apple-2.gif", "bell-1.gif"]


def test_from_storage_without_classes_file(dataset_dir):
    index = DatasetIndex.from_storage(LocalStorage(), DatasetPaths(dataset_list=str(dataset_dir / "lists.txt")))
    assert len(index) == 3
    assert index.details_by_filename() == {}


def test_from_storage_requires_list_file():
    with pytest.raises(NotFound):
        DatasetIndex.from_storage(LocalStorage(), DatasetPaths())
