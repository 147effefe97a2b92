from markshelf.services.bookmark_import import (
    ParsedFolder,
    ParsedLink,
    flatten_bookmark_tree,
    parse_bookmark_html,
)

NESTED_EXPORT = """
<!DOCTYPE NETSCAPE-Bookmark-file-1>
<DL><p>
  <DT><H3>Root Folder</H3>
  <DL><p>
    <DT><A HREF="https://example.com/a" ADD_DATE="1600000000">A</A>
    <DT><H3>Inner Folder</H3>
    <DL><p>
      <DT><A HREF="https://example.com/b">B</A>
      <DT><A HREF="https://example.com/c#frag">C</A>
    </DL><p>
  </DL><p>
  <DT><A HREF="https://example.com/root">Root Link</A>
</DL><p>
"""


def test_parse_bookmark_html_builds_folder_tree():
    tree = parse_bookmark_html(NESTED_EXPORT)

    assert isinstance(tree[0], ParsedFolder)
    assert tree[0].name == "Root Folder"
    assert isinstance(tree[-1], ParsedLink)
    assert tree[-1].href == "https://example.com/root"

    inner = [child for child in tree[0].children if isinstance(child, ParsedFolder)]
    assert [folder.name for folder in inner] == ["Inner Folder"]
    assert [link.href for link in inner[0].children] == [
        "https://example.com/b",
        "https://example.com/c#frag",
    ]


def test_flatten_bookmark_tree_joins_folder_paths():
    rows = flatten_bookmark_tree(parse_bookmark_html(NESTED_EXPORT))

    assert [row.url for row in rows] == [
        "https://example.com/a",
        "https://example.com/b",
        "https://example.com/c#frag",
        "https://example.com/root",
    ]
    assert [row.folder_path for row in rows] == [
        "Root Folder",
        "Root Folder/Inner Folder",
        "Root Folder/Inner Folder",
        "Imported",
    ]
    assert {row.source for row in rows} == {"upload"}
    assert rows[0].description == "A"


def test_flatten_converts_add_date_seconds_to_milliseconds():
    rows = flatten_bookmark_tree(parse_bookmark_html(NESTED_EXPORT))
    assert rows[0].date_added == 1_600_000_000_000
    assert rows[1].date_added is None


def test_anchor_without_text_falls_back_to_url_title():
    html = """
<!DOCTYPE NETSCAPE-Bookmark-file-1>
<DL><p>
  <DT><A HREF="https://example.com/no-title"></A>
</DL><p>
"""

    tree = parse_bookmark_html(html)
    assert tree == [ParsedLink(title="", href="https://example.com/no-title")]

    rows = flatten_bookmark_tree(tree)
    assert rows[0].title == "https://example.com/no-title"
    assert rows[0].description == ""


def test_parse_bookmark_html_without_list_returns_nothing():
    assert parse_bookmark_html("") == []
    assert parse_bookmark_html("<html><body><p>hello</p></body></html>") == []


CHROME_EXPORT = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1600000000" PERSONAL_TOOLBAR_FOLDER="true">Bar</H3>
    <DL><p>
        <DT><A HREF="https://a.test/" ADD_DATE="1600000001">A</A>
        <DT><H3 ADD_DATE="1600000002">Sub</H3>
        <DL><p>
            <DT><A HREF="https://b.test/" ADD_DATE="1600000003">B</A>
            <DT><A HREF="https://c.test/">C</A>
            <DT><H3>Deeper</H3>
            <DL><p>
                <DT><A HREF="https://d.test/">D</A>
            </DL><p>
        </DL><p>
        <DT><A HREF="https://e.test/">E</A>
    </DL><p>
</DL><p>
"""


def test_links_after_a_sibling_link_keep_their_subfolder():
    rows = flatten_bookmark_tree(parse_bookmark_html(CHROME_EXPORT))

    assert sorted((row.url, row.folder_path) for row in rows) == [
        ("https://a.test/", "Bar"),
        ("https://b.test/", "Bar/Sub"),
        ("https://c.test/", "Bar/Sub"),
        ("https://d.test/", "Bar/Sub/Deeper"),
        ("https://e.test/", "Bar"),
    ]


def test_each_folder_is_emitted_once():
    def folder_names(items):
        names = []
        for item in items:
            if isinstance(item, ParsedFolder):
                names.append(item.name)
                names.extend(folder_names(item.children))
        return names

    assert folder_names(parse_bookmark_html(CHROME_EXPORT)) == ["Bar", "Sub", "Deeper"]
