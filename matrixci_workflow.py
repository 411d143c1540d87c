# matrixci_workflow.py
# The project's CI: format/lint on Linux stable, build + test on every OS,
# and an AddressSanitizer run on the nightly toolchain.
from __future__ import annotations

from matrixci import axis, job, on, sh, wf


def workflow():
    return wf(
        job(
            "check",
            sh("Format", "cargo fmt --all -- --check"),
            sh("Clippy", "cargo clippy --all -- -D clippy::all"),
            os="ubuntu-latest",
            toolchain="stable",
            display_name="Linux-Stable",
        ),

        job(
            "test",
            sh("Build", "cargo build"),
            sh("Test", "cargo test --all"),
            toolchain="stable",
            axes=[axis("os", ["ubuntu-latest", "macos-latest", "windows-latest"])],
        ),

        job(
            "sanitizer",
            sh("Select nightly", "rustup default nightly"),
            sh("Build", "cargo build"),
            sh("Test", "cargo test --all"),
            sh(
                "Test (AddressSanitizer)",
                "cargo test --all --target x86_64-unknown-linux-gnu",
                env={
                    "RUSTFLAGS": "-Z sanitizer=address",
                    "RUSTDOCFLAGS": "-Z sanitizer=address",
                },
            ),
            os="ubuntu-latest",
            toolchain="nightly",
            display_name="Linux-Nightly",
        ),

        name="CI",
        triggers=on(pull_request=True, push=["main"]),
        env={
            "RUST_BACKTRACE": 1,
            "RUSTFLAGS": "--deny=warnings",
            "TEST_BIND": 1,
        },
    )
