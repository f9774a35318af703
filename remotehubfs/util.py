import hashlib
import json


def pretty_json(_object):
    return json.dumps(_object, indent=2, sort_keys=False)


def sha1(text):
    return hashlib.sha1(text.encode("utf8")).hexdigest()


def compact_query(query):
    # collapse whitespace so equal queries with different indentation digest equally
    return " ".join(query.split())
