import pytest

from carbon_clickhouse.tags import TagConfig, graphite, prometheus

GRAPHITE_CASES = [
    ("notag", "notag"),
    ("some.metric;tag1=value2;tag2=value.2;tag1=value3", "some.metric?tag1=value3&tag2=value.2"),
    ("some.metric;tag1=value2;tag2=value.2;tag1=value0", "some.metric?tag1=value0&tag2=value.2"),
    ("some.metric;c=1;b=2;a=3", "some.metric?a=3&b=2&c=1"),
    ("some.metric;k=a;k=_;k2=3;k=0;k=42", "some.metric?k=42&k2=3"),
    ("some.metric", "some.metric"),
    (
        "complex.delete_me.tag2./some/url/fff.series;tag2=value2",
        "complex.delete_me.tag2./some/url/fff.series?tag2=value2",
    ),
    ("name.иван", "name.иван"),
    ("name.иван;tagged=true", "name.%D0%B8%D0%B2%D0%B0%D0%BD?tagged=true"),
    ("some.metric,1", "some.metric,1"),
    ("some.metric,1;tagged=true", "some.metric,1?tagged=true"),
    ("some.metric?name", "some.metric?name"),
    ("some.metric?name;tagged=true", "some.metric%3Fname?tagged=true"),
    ("some.metric;tagged=true?false", "some.metric?tagged=true%3Ffalse"),
]


@pytest.mark.parametrize("source,expected", GRAPHITE_CASES)
def test_graphite(source, expected):
    assert graphite(TagConfig(), source) == expected


def test_graphite_without_name_fails():
    with pytest.raises(ValueError, match="no metric found"):
        graphite(TagConfig(), ";tag1=value2;tag2=value.2;tag1=value3")


def test_graphite_invalid_segment_fails():
    with pytest.raises(ValueError, match="invalid segment"):
        graphite(TagConfig(), "some.metric;=value")


@pytest.fixture
def template_config():
    cfg = TagConfig(
        enabled=True,
        separator="_",
        tags=["tag0=value0", "tag1=value1"],
        templates=[
            "*.app a.b.c.measurement",
            "stats.* .host.measurement* region=us-west,tag1=new-value1",
            "multi.tags.* ..a.measurement*    tag0=new-value0",
            ".measurement*",
        ],
    )
    cfg.configure()
    return cfg


@pytest.mark.parametrize(
    "source,expected",
    [
        ("some.metric", "metric?tag0=value0&tag1=value1"),
        ("aval.bval.cval.app", "app?a=aval&b=bval&c=cval&tag0=value0&tag1=value1"),
        (
            "stats.local.a.b.c.d",
            "a_b_c_d?host=local&region=us-west&tag0=value0&tag1=new-value1",
        ),
        ("multi.tags.aval.m1.m2.m3", "m1_m2_m3?a=aval&tag0=new-value0&tag1=value1"),
    ],
)
def test_templates(template_config, source, expected):
    assert graphite(template_config, source) == expected


def test_configure_builds_tag_map(template_config):
    assert template_config.tag_map == {"tag0": "value0", "tag1": "value1"}
    assert len(template_config.template_descs) == 4
    assert template_config.template_descs[1].extra_tags == {
        "region": "us-west",
        "tag1": "new-value1",
    }


def test_configure_rejects_too_many_tokens():
    cfg = TagConfig(enabled=True, templates=["a b c d"])
    with pytest.raises(ValueError, match="wrong template format"):
        cfg.configure()


def test_prometheus_name_first_and_sorted():
    labels = [("job", "node"), ("__name__", "up"), ("instance", "10.0.0.1:9100")]
    assert prometheus(labels) == "up?instance=10.0.0.1%3A9100&job=node"
    assert labels[0] == ("job", "node")


def test_prometheus_without_name_skips_first_label():
    assert prometheus([("b", "2"), ("a", "1")]) == "?b=2"


def test_prometheus_escapes_values():
    assert prometheus([("__name__", "a?b"), ("k", "x y")]) == "a%3Fb?k=x+y"