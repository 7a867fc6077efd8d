"""Bundled build assets.

Both assets ship inside the package as constants so a build never depends
on files next to the installation.
"""

from __future__ import annotations

# Fed to ``sh -s -- INPUT OUTPUT`` over stdin by the local compiler.
BUILD_SCRIPT = b"""\
set -eu

if [ "$#" -ne 2 ]; then
    echo "usage: build.sh INPUT_FILE OUTPUT_FILE" >&2
    exit 2
fi

input="$1"
output="$2"

case "$(uname -m)" in
    x86_64) arch=x86 ;;
    aarch64|arm64) arch=arm64 ;;
    *) arch="$(uname -m)" ;;
esac

CLANG="${CLANG:-clang}"
LLVM_STRIP="${LLVM_STRIP:-llvm-strip}"

echo "compiling ${input} -> ${output} (target bpf, arch ${arch})"
"$CLANG" -g -O2 -target bpf "-D__TARGET_ARCH_${arch}" ${CFLAGS:-} -Wall \\
    -c "$input" -o "$output"
"$LLVM_STRIP" -g "$output"
"""

# Recipe for the uber image; build args select the runner image and the
# program reference inside the copied store.
UBER_DOCKERFILE = b"""\
ARG BEE_IMAGE
ARG BEE_TAG
FROM ${BEE_IMAGE}:${BEE_TAG}

ARG BPF_IMAGE
ENV BPF_IMAGE=${BPF_IMAGE}

COPY store /root/.bumblebee/store

ENTRYPOINT ["/bin/sh", "-c", "exec /usr/local/bin/bee run \\"$BPF_IMAGE\\""]
"""
