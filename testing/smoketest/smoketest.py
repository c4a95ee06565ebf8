from bsonserialize import deserialize, serialize


def main() -> None:
    msg = "Don't let the smoke out!"
    doc_out = deserialize(serialize({"msg": msg}, check_keys=True))
    if doc_out != {"msg": msg}:
        raise AssertionError("Smoke test failed")
    print(doc_out["msg"])


if __name__ == "__main__":
    main()
