import uvicorn

from officeapi.utils.constants import Server


def main() -> None:
    uvicorn.run("officeapi.main:app", host="0.0.0.0", port=Server.PORT)


if __name__ == "__main__":
    main()
